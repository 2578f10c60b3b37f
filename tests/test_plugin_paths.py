"""
Tests for component → install path mapping and manifest parsing.
"""

import pytest

from devchef.core.data import plugin_type_paths, script_path
from devchef.core.errors import ConfigurationInvalid
from devchef.core.services.plugin_paths import parse_component, plugin_mount_path


class TestPluginMountPath:
    def test_classic_layout(self):
        assert plugin_mount_path("filter_imageopt") == "/filter/imageopt"

    def test_public_layout(self):
        assert plugin_mount_path("filter_imageopt", public=True) == "/public/filter/imageopt"

    def test_nested_type_directory(self):
        assert plugin_mount_path("atto_fullscreen") == "/lib/editor/atto/plugins/fullscreen"

    def test_only_first_underscore_splits(self):
        assert plugin_mount_path("local_my_plugin") == "/local/my_plugin"

    def test_activity_module(self):
        assert plugin_mount_path("mod_attendance") == "/mod/attendance"

    def test_unknown_type(self):
        with pytest.raises(ConfigurationInvalid, match="Unsupported plugin type 'nosuch'"):
            plugin_mount_path("nosuch_thing")

    @pytest.mark.parametrize("component", ["local", "local_", ""])
    def test_malformed(self, component):
        with pytest.raises(ConfigurationInvalid, match="Malformed"):
            plugin_mount_path(component)


class TestParseComponent:
    def test_single_quotes(self):
        assert parse_component("<?php\n$plugin->component = 'local_foo';\n") == "local_foo"

    def test_double_quotes_and_spacing(self):
        assert parse_component('$plugin->component="block_bar" ;') == "block_bar"

    def test_missing(self):
        assert parse_component("<?php\n$plugin->version = 2024010100;\n") is None


class TestBundledData:
    def test_catalog_covers_core_types(self):
        paths = plugin_type_paths()
        assert paths["mod"] == "/mod/"
        assert paths["local"] == "/local/"
        assert paths["tool"] == "/admin/tool/"
        assert len(paths) >= 50

    def test_category_script_is_packaged(self):
        path = script_path("create_category.php")
        assert path.is_file()
        assert "DEVCHEF_RECIPE_PATH" in path.read_text(encoding="utf-8")
