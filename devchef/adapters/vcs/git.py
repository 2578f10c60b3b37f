"""
Git adapter — clone, checkout and shallow inspection of remote repos.

Everything goes through the git CLI via ``CommandRunner``.
"""

from __future__ import annotations

import logging
import tempfile
from pathlib import Path

from devchef.adapters.shell.command import CommandRunner
from devchef.core.errors import ConfigurationInvalid, ExternalProcessFailure

logger = logging.getLogger(__name__)


class GitClient:
    """Git operations used by the plugin resolver and remote fetcher."""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def _git(self, *args: str, cwd: Path | None = None, check: bool = True, timeout: int = 300):
        return self.runner.run(["git", *args], cwd=cwd, check=check, timeout=timeout)

    # ── Working copies ──────────────────────────────────────────

    def clone(self, url: str, dest: Path) -> None:
        logger.info("Cloning %s into %s", url, dest)
        self._git("clone", url, str(dest), timeout=1800)

    def add_remote(self, working_copy: Path, name: str, url: str) -> None:
        self._git("remote", "add", name, url, cwd=working_copy)

    def _lines(self, *args: str, cwd: Path) -> list[str]:
        result = self._git(*args, cwd=cwd)
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    def checkout_branch_or_tag(self, working_copy: Path, ref: str, remote: str = "origin") -> None:
        """Check out *ref*, preferring tags over branches.

        Order: local tag, remote tag, local branch, remote branch.

        Raises:
            ConfigurationInvalid: *ref* exists nowhere.
        """
        if ref in self._lines("tag", "--list", ref, cwd=working_copy):
            logger.debug("Checking out local tag %s", ref)
            self._git("checkout", ref, cwd=working_copy)
            return

        if self._lines("ls-remote", "--tags", remote, f"refs/tags/{ref}", cwd=working_copy):
            logger.debug("Fetching remote tag %s from %s", ref, remote)
            self._git("fetch", remote, f"refs/tags/{ref}:refs/tags/{ref}", cwd=working_copy)
            self._git("checkout", ref, cwd=working_copy)
            return

        local_branches = [
            line.lstrip("* ").strip()
            for line in self._lines("branch", "--list", ref, cwd=working_copy)
        ]
        if ref in local_branches:
            logger.debug("Checking out local branch %s", ref)
            self._git("checkout", ref, cwd=working_copy)
            return

        if self._lines("ls-remote", "--heads", remote, f"refs/heads/{ref}", cwd=working_copy):
            logger.debug("Fetching remote branch %s from %s", ref, remote)
            self._git("fetch", remote, ref, cwd=working_copy)
            self._git("checkout", "-b", ref, f"{remote}/{ref}", cwd=working_copy)
            return

        raise ConfigurationInvalid(
            f"Branch or tag '{ref}' does not exist locally or on remote '{remote}'"
        )

    # ── Remote lookups (no working copy) ────────────────────────

    def ref_exists_remotely(self, url: str, ref: str) -> bool:
        """True if *ref* is a tag or branch on *url*."""
        for kind in ("--tags", "--heads"):
            result = self._git("ls-remote", "--exit-code", kind, url, ref, check=False, timeout=60)
            if result.returncode == 0:
                return True
            if result.returncode != 2:
                # 2 means "no matching refs"; anything else is a real failure
                raise ExternalProcessFailure(
                    ["git", "ls-remote", kind, url, ref], result.returncode, result.stderr
                )
        return False

    def _shallow_fetch(self, tmp: Path, url: str, ref: str) -> None:
        self._git("init", "-q", cwd=tmp)
        self._git("remote", "add", "origin", url, cwd=tmp)
        self._git("fetch", "--depth=1", "--filter=blob:none", "origin", ref, cwd=tmp, timeout=300)

    def read_file_shallow(self, url: str, ref: str, path: str) -> str | None:
        """Read one file at *ref* without a full clone. None if absent."""
        with tempfile.TemporaryDirectory(prefix="devchef-git-") as tmp:
            work = Path(tmp)
            self._shallow_fetch(work, url, ref)
            spec = f"FETCH_HEAD:{path.lstrip('/')}"
            exists = self._git("cat-file", "-e", spec, cwd=work, check=False)
            if exists.returncode != 0:
                return None
            return self._git("show", spec, cwd=work).stdout

    def path_type_shallow(self, url: str, ref: str, path: str) -> str | None:
        """Object type ('tree', 'blob') of *path* at *ref*, or None if absent."""
        with tempfile.TemporaryDirectory(prefix="devchef-git-") as tmp:
            work = Path(tmp)
            self._shallow_fetch(work, url, ref)
            result = self._git("cat-file", "-t", f"FETCH_HEAD:{path.strip('/')}", cwd=work, check=False)
            if result.returncode != 0:
                return None
            return result.stdout.strip()
