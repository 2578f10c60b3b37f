"""
Tests for the plugin resolver — cache reuse, invalidation and local sources.
"""

import json

import pytest
from fakes import FakeResponse, api_file, api_url, fake_clone, version_php

from devchef.core.config.loader import load_recipe
from devchef.core.errors import ConfigurationInvalid, ResourceConflict
from devchef.core.persistence.plugin_cache import cache_path, load_cached
from devchef.core.services.plugin_resolver import PluginResolver, select_plugins

FOO = "https://github.com/acme/moodle-local_foo.git"
BAR = "https://github.com/acme/moodle-block_bar.git"
BAZ = "https://github.com/acme/moodle-filter_baz.git"


@pytest.fixture
def remote(session, runner):
    """Serve manifests for three plugins and fake the clone."""
    session.route(api_url("acme", "moodle-local_foo", "version.php"), api_file(version_php("local_foo")))
    session.route(api_url("acme", "moodle-block_bar", "version.php"), api_file(version_php("block_bar")))
    session.route(api_url("acme", "moodle-filter_baz", "version.php"), api_file(version_php("filter_baz")))
    runner.set_response("git clone", side_effect=fake_clone)
    runner.set_response("git branch --list", stdout="* main\n")
    return session


def _manifest_fetches(session) -> int:
    return len(session.requested("/contents/version.php"))


class TestResolve:
    def test_resolves_components_and_paths(self, run_ctx, remote, write_recipe, project_dir):
        recipe = load_recipe(write_recipe(plugins=[FOO, BAR]))
        info = PluginResolver(run_ctx).resolve(recipe)

        assert set(info.plugins) == {"local_foo", "block_bar"}
        foo = info.plugins["local_foo"]
        assert foo.path == "/local/foo"
        assert foo.plugin_type == "local"
        assert foo.volume.host_path == str((project_dir / "moodle" / "local" / "foo").resolve())
        assert (project_dir / "moodle" / "blocks" / "bar" / "version.php").is_file()
        assert len(info.volumes) == 2

    def test_result_is_cached(self, run_ctx, remote, write_recipe, project_dir):
        recipe = load_recipe(write_recipe(plugins=[FOO]))
        PluginResolver(run_ctx).resolve(recipe)

        cached = load_cached(cache_path(recipe.recipe_dir))
        assert cached is not None
        assert set(cached.plugins) == {"local_foo"}

    def test_cache_hit_makes_no_remote_calls(self, run_ctx, remote, write_recipe, runner):
        PluginResolver(run_ctx).resolve(load_recipe(write_recipe(plugins=[FOO, BAR])))
        fetched = _manifest_fetches(remote)
        git_calls = runner.call_count

        # Same set, different order, one duplicate, different spelling
        again = load_recipe(write_recipe(plugins=[{"repo": BAR}, FOO, f"{FOO}~main"]))
        info = PluginResolver(run_ctx).resolve(again)

        assert set(info.plugins) == {"local_foo", "block_bar"}
        assert _manifest_fetches(remote) == fetched
        assert runner.call_count == git_calls

    def test_changed_set_replaces_cache(self, run_ctx, remote, write_recipe):
        PluginResolver(run_ctx).resolve(load_recipe(write_recipe(plugins=[FOO, BAR])))
        fetched = _manifest_fetches(remote)

        recipe = load_recipe(write_recipe(plugins=[FOO, BAZ]))
        info = PluginResolver(run_ctx).resolve(recipe)

        assert set(info.plugins) == {"local_foo", "filter_baz"}
        assert _manifest_fetches(remote) == fetched + 2
        cached = load_cached(cache_path(recipe.recipe_dir))
        assert set(cached.plugins) == {"local_foo", "filter_baz"}

    def test_branch_change_invalidates(self, run_ctx, remote, write_recipe):
        PluginResolver(run_ctx).resolve(load_recipe(write_recipe(plugins=[FOO])))
        fetched = _manifest_fetches(remote)
        PluginResolver(run_ctx).resolve(load_recipe(write_recipe(plugins=[f"{FOO}~v2.0"])))
        assert _manifest_fetches(remote) == fetched + 1
        assert remote.requests[-1]["params"] == {"ref": "v2.0"}

    def test_skip_cache_forces_lookup(self, run_ctx, remote, write_recipe):
        recipe = load_recipe(write_recipe(plugins=[FOO]))
        PluginResolver(run_ctx).resolve(recipe)
        fetched = _manifest_fetches(remote)
        PluginResolver(run_ctx).resolve(recipe, skip_cache=True)
        assert _manifest_fetches(remote) == fetched + 1

    def test_corrupt_cache_is_a_miss(self, run_ctx, remote, write_recipe):
        recipe = load_recipe(write_recipe(plugins=[FOO]))
        path = cache_path(recipe.recipe_dir)
        path.parent.mkdir(parents=True)
        path.write_text("{broken", encoding="utf-8")

        info = PluginResolver(run_ctx).resolve(recipe)
        assert "local_foo" in info.plugins
        assert json.loads(path.read_text(encoding="utf-8"))["plugins"]

    def test_no_plugins_needs_no_network(self, run_ctx, session, write_recipe):
        info = PluginResolver(run_ctx).resolve(load_recipe(write_recipe()))
        assert info.is_empty()
        assert session.requests == []

    def test_public_layout_prefixes_paths(self, run_ctx, remote, write_recipe):
        remote.route(api_url("moodle", "moodle", "public"), FakeResponse(200, json_data=[{"name": "index.php"}]))
        recipe = load_recipe(write_recipe(moodleTag="v5.1.0", plugins=[FOO]))
        info = PluginResolver(run_ctx).resolve(recipe)
        assert info.plugins["local_foo"].path == "/public/local/foo"


class TestResolveFailures:
    def test_missing_manifest_writes_no_cache(self, run_ctx, remote, write_recipe):
        ghost = "https://github.com/acme/moodle-local_ghost.git"
        recipe = load_recipe(write_recipe(plugins=[FOO, ghost]))
        with pytest.raises(ConfigurationInvalid, match="No version.php"):
            PluginResolver(run_ctx).resolve(recipe)
        assert not cache_path(recipe.recipe_dir).exists()

    def test_failed_resolution_keeps_previous_cache(self, run_ctx, remote, write_recipe):
        PluginResolver(run_ctx).resolve(load_recipe(write_recipe(plugins=[FOO])))
        path = cache_path(load_recipe(write_recipe(plugins=[FOO])).recipe_dir)
        before = path.read_text(encoding="utf-8")

        ghost = "https://github.com/acme/moodle-local_ghost.git"
        with pytest.raises(ConfigurationInvalid):
            PluginResolver(run_ctx).resolve(load_recipe(write_recipe(plugins=[FOO, ghost])))
        assert path.read_text(encoding="utf-8") == before

    def test_manifest_without_component(self, run_ctx, session, runner, write_recipe):
        session.route(api_url("acme", "moodle-local_foo", "version.php"), api_file("<?php\n$plugin->version = 1;\n"))
        with pytest.raises(ConfigurationInvalid, match="component"):
            PluginResolver(run_ctx).resolve(load_recipe(write_recipe(plugins=[FOO])))

    def test_unknown_plugin_type(self, run_ctx, session, write_recipe):
        session.route(api_url("acme", "moodle-local_foo", "version.php"), api_file(version_php("weird_thing")))
        with pytest.raises(ConfigurationInvalid, match="Unsupported plugin type"):
            PluginResolver(run_ctx).resolve(load_recipe(write_recipe(plugins=[FOO])))

    def test_two_repos_same_component(self, run_ctx, remote, write_recipe):
        fork = "https://github.com/fork/moodle-local_foo.git"
        remote.route(api_url("fork", "moodle-local_foo", "version.php"), api_file(version_php("local_foo")))
        with pytest.raises(ConfigurationInvalid, match="declared twice"):
            PluginResolver(run_ctx).resolve(load_recipe(write_recipe(plugins=[FOO, fork])))


class TestLocalSource:
    def test_existing_source_is_not_overwritten(self, run_ctx, remote, runner, write_recipe, project_dir):
        target = project_dir / "moodle" / "local" / "foo"
        target.mkdir(parents=True)
        (target / "version.php").write_text("<?php // my edits\n", encoding="utf-8")
        (target / "lib.php").write_text("<?php // wip\n", encoding="utf-8")

        PluginResolver(run_ctx).resolve(load_recipe(write_recipe(plugins=[FOO])))

        assert runner.calls_matching("git clone") == []
        assert (target / "version.php").read_text(encoding="utf-8") == "<?php // my edits\n"
        assert (target / "lib.php").exists()

    def test_non_plugin_files_in_target_conflict(self, run_ctx, remote, write_recipe, project_dir):
        target = project_dir / "moodle" / "local" / "foo"
        target.mkdir(parents=True)
        (target / "notes.txt").write_text("mine", encoding="utf-8")
        with pytest.raises(ResourceConflict):
            PluginResolver(run_ctx).resolve(load_recipe(write_recipe(plugins=[FOO])))
        assert (target / "notes.txt").exists()

    def test_checkout_uses_declared_branch_and_upstream(self, run_ctx, remote, runner, write_recipe):
        runner.set_response("git branch --list", stdout="* MOODLE_405_STABLE\n")
        recipe = load_recipe(write_recipe(plugins=[
            {"repo": FOO, "branch": "MOODLE_405_STABLE", "upstream": "https://github.com/upstream/foo.git"},
        ]))
        PluginResolver(run_ctx).resolve(recipe)
        assert runner.calls_matching("git checkout MOODLE_405_STABLE")
        assert runner.calls_matching("git remote add upstream https://github.com/upstream/foo.git")


class TestSelectPlugins:
    def test_subset(self, run_ctx, remote, write_recipe):
        info = PluginResolver(run_ctx).resolve(load_recipe(write_recipe(plugins=[FOO, BAR])))
        subset = select_plugins(info, ["block_bar"])
        assert list(subset.plugins) == ["block_bar"]
        assert subset.volumes == [info.plugins["block_bar"].volume]

    def test_unknown(self, run_ctx, remote, write_recipe):
        info = PluginResolver(run_ctx).resolve(load_recipe(write_recipe(plugins=[FOO])))
        with pytest.raises(ConfigurationInvalid, match="mod_nope"):
            select_plugins(info, ["mod_nope"])
