"""
Application layout — where things live inside the Moodle checkout.

Moodle 5.1 moved the web root into a ``public/`` folder. Whether a given
tag uses that layout is decided by probing the upstream repository once
per tag; the answer is cached on the ``AppLayout`` for the rest of the run.
"""

from __future__ import annotations

import logging

from devchef.core.services.remote_fetch import RemoteFetcher

logger = logging.getLogger(__name__)

MOODLE_REPO = "https://github.com/moodle/moodle.git"
APP_ROOT = "/var/www/html/moodle"


class AppLayout:
    """Public-folder probe with a per-run cache."""

    def __init__(self, fetcher: RemoteFetcher, repo_url: str = MOODLE_REPO):
        self.fetcher = fetcher
        self.repo_url = repo_url
        self._public: dict[str, bool] = {}

    def uses_public_folder(self, tag: str) -> bool:
        if tag not in self._public:
            public = self.fetcher.folder_exists(self.repo_url, tag, "public")
            logger.info("Moodle %s %s the public/ layout", tag, "uses" if public else "does not use")
            self._public[tag] = public
        return self._public[tag]

    def web_path(self, tag: str, relative: str) -> str:
        """Absolute container path of a web-root file (``admin/tool/...``)."""
        prefix = "/public" if self.uses_public_folder(tag) else ""
        return f"{APP_ROOT}{prefix}/{relative.lstrip('/')}"

    @staticmethod
    def cli_path(relative: str) -> str:
        """Absolute container path of a file outside the web root (``admin/cli/...``)."""
        return f"{APP_ROOT}/{relative.lstrip('/')}"
