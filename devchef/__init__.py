"""devchef — recipe-driven Moodle development sandboxes."""

__version__ = "0.1.0"
