"""
Plugin component names → install paths.

A Moodle component is ``<type>_<name>`` (``filter_imageopt``,
``local_my_plugin``). The type selects a directory from the static
taxonomy; the rest of the name becomes the leaf folder.
"""

from __future__ import annotations

import re

from devchef.core.data import plugin_type_paths
from devchef.core.errors import ConfigurationInvalid

PUBLIC_PREFIX = "/public"

_COMPONENT_RE = re.compile(r"\$plugin->component\s*=\s*['\"](.+?)['\"]\s*;")


def parse_component(version_php: str) -> str | None:
    """Extract ``$plugin->component`` from a version.php body."""
    m = _COMPONENT_RE.search(version_php)
    return m.group(1).strip() if m else None


def plugin_mount_path(component: str, public: bool = False) -> str:
    """Path of *component* inside the application root.

    >>> plugin_mount_path("filter_imageopt")
    '/filter/imageopt'
    >>> plugin_mount_path("filter_imageopt", public=True)
    '/public/filter/imageopt'

    Raises:
        ConfigurationInvalid: unknown plugin type or malformed component.
    """
    plugin_type, sep, name = component.partition("_")
    if not sep or not name:
        raise ConfigurationInvalid(f"Malformed plugin component '{component}'")

    base = plugin_type_paths().get(plugin_type)
    if base is None:
        raise ConfigurationInvalid(f"Unsupported plugin type '{plugin_type}' for component '{component}'")

    # Only the first underscore separates type from name; the rest is the folder
    path = base + name
    return PUBLIC_PREFIX + path if public else path
