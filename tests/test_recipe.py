"""
Tests for the recipe model and loader.
"""

import json
import logging

import pytest
import requests
from fakes import FakeResponse
from pydantic import ValidationError

from devchef.core.config.loader import find_chef_dir, load_recipe, resolve_recipe_file
from devchef.core.errors import ConfigurationInvalid
from devchef.core.models.recipe import PluginDeclaration, Recipe, SampleDataSpec

# ── Model ────────────────────────────────────────────────────────────


class TestRecipeDefaults:
    def test_minimal(self):
        r = Recipe.model_validate({"moodleTag": "v4.5.0", "phpVersion": "8.2"})
        assert r.container_prefix == "mc"
        assert r.db_type == "pgsql"
        assert r.effective_port == 80
        assert r.www_root == "http://localhost"
        assert r.effective_db_name == "mc-moodle"
        assert r.app_container == "mc-moodle"
        assert r.db_container == "mc-db"
        assert r.install_moodledb is True
        assert r.mounts_plugins is False

    def test_port_in_www_root(self):
        r = Recipe.model_validate({
            "moodleTag": "v4.5.0", "phpVersion": "8.2",
            "host": "moodle.test", "hostProtocol": "https", "port": 8443,
        })
        assert r.www_root == "https://moodle.test:8443"

    def test_snake_case_keys_accepted(self):
        r = Recipe.model_validate({"moodle_tag": "v4.5.0", "php_version": "8.1", "container_prefix": "x"})
        assert r.instance_name == "x"

    def test_behat_host(self):
        r = Recipe.model_validate({
            "moodleTag": "v4.5.0", "phpVersion": "8.2", "host": "moodle.test", "includeBehat": True,
        })
        assert r.effective_behat_host == "moodle.test.behat"
        assert r.behat_www_root == "http://moodle.test.behat"

    def test_behat_host_only_with_behat(self):
        r = Recipe.model_validate({"moodleTag": "v4.5.0", "phpVersion": "8.2", "behatHost": "b.test"})
        assert r.effective_behat_host is None

    def test_frozen(self):
        r = Recipe.model_validate({"moodleTag": "v4.5.0", "phpVersion": "8.2"})
        with pytest.raises(ValidationError):
            r.port = 9000

    def test_deprecated_clone_flag_still_mounts(self, caplog):
        with caplog.at_level(logging.WARNING):
            r = Recipe.model_validate({"moodleTag": "v4.5.0", "phpVersion": "8.2", "cloneRepoPlugins": True})
        assert r.mounts_plugins is True
        assert "deprecated" in caplog.text

    @pytest.mark.parametrize("mount,clone,expected", [
        (False, True, False),
        (True, False, True),
        (None, True, True),
        (None, None, False),
    ])
    def test_mount_flag_wins_over_deprecated_clone(self, mount, clone, expected):
        data = {"moodleTag": "v4.5.0", "phpVersion": "8.2"}
        if mount is not None:
            data["mountPlugins"] = mount
        if clone is not None:
            data["cloneRepoPlugins"] = clone
        assert Recipe.model_validate(data).mounts_plugins is expected


class TestRecipeValidation:
    @pytest.mark.parametrize("field,value", [
        ("phpVersion", "5.6"),
        ("dbType", "oracle"),
        ("port", 70000),
        ("containerPrefix", "bad prefix!"),
    ])
    def test_rejected(self, field, value):
        data = {"moodleTag": "v4.5.0", "phpVersion": "8.2", field: value}
        with pytest.raises(ValidationError):
            Recipe.model_validate(data)

    def test_numeric_php_version(self):
        assert Recipe.model_validate({"moodleTag": "v4.5.0", "phpVersion": 8.3}).php_version == "8.3"

    def test_bad_category_name(self):
        with pytest.raises(ValidationError, match="invalid category name"):
            Recipe.model_validate({
                "moodleTag": "v4.5.0", "phpVersion": "8.2",
                "restoreStructure": {"courseCategories": {"A/B": ["x.mbz"]}},
            })


class TestPluginDeclaration:
    URL = "https://github.com/acme/moodle-local_foo.git"

    def test_string_defaults_to_main(self):
        d = PluginDeclaration.model_validate(self.URL)
        assert (d.repo, d.branch, d.upstream) == (self.URL, "main", None)

    def test_string_with_branch(self):
        d = PluginDeclaration.model_validate(f"{self.URL}~MOODLE_405_STABLE")
        assert d.branch == "MOODLE_405_STABLE"

    def test_forms_normalize_to_equal_values(self):
        a = PluginDeclaration.model_validate(f"{self.URL}~v1.0")
        b = PluginDeclaration.model_validate({"repo": self.URL, "branch": "v1.0"})
        assert a == b
        assert hash(a) == hash(b)

    def test_empty_repo(self):
        with pytest.raises(ValidationError):
            PluginDeclaration.model_validate("~main")

    def test_declaration_set_ignores_order_and_duplicates(self):
        other = "https://github.com/acme/moodle-block_bar.git"
        r1 = Recipe.model_validate({"moodleTag": "v4.5.0", "phpVersion": "8.2", "plugins": [self.URL, other]})
        r2 = Recipe.model_validate({
            "moodleTag": "v4.5.0", "phpVersion": "8.2",
            "plugins": [{"repo": other}, self.URL, f"{self.URL}~main"],
        })
        assert r1.declaration_set() == r2.declaration_set()


class TestSampleDataSpec:
    def test_size_is_uppercased(self):
        assert SampleDataSpec.model_validate({"size": "xl"}).size == "XL"

    def test_invalid_size_falls_back_to_m(self, caplog):
        with caplog.at_level(logging.WARNING):
            spec = SampleDataSpec.model_validate({"size": "huge"})
        assert spec.size == "M"
        assert "Invalid sample data size" in caplog.text

    def test_mode_inferred_from_courses(self):
        assert SampleDataSpec.model_validate({}).effective_mode == "site"
        assert SampleDataSpec.model_validate({"courses": 3}).effective_mode == "course"

    def test_course_count_default(self):
        assert SampleDataSpec.model_validate({"mode": "course"}).course_count == 10

    def test_modules_from_string(self):
        spec = SampleDataSpec.model_validate({"additionalmodules": "quiz, forum"})
        assert spec.additionalmodules == ["quiz", "forum"]

    def test_zero_courses_rejected(self):
        with pytest.raises(ValidationError):
            SampleDataSpec.model_validate({"courses": 0})


# ── Loader ───────────────────────────────────────────────────────────


class TestLoadRecipe:
    def test_loads_and_records_path(self, write_recipe, project_dir):
        path = write_recipe()
        recipe = load_recipe(path)
        assert recipe.recipe_path == path.resolve()
        assert recipe.recipe_dir == project_dir.resolve()
        assert recipe.www_root == "http://localhost:8080"

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationInvalid, match="not found"):
            load_recipe(tmp_path / "nope.json")

    def test_bad_json(self, project_dir):
        path = project_dir / "recipe.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigurationInvalid, match="Invalid JSON"):
            load_recipe(path)

    def test_not_an_object(self, project_dir):
        path = project_dir / "recipe.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(ConfigurationInvalid, match="JSON object"):
            load_recipe(path)

    def test_schema_errors_name_the_field(self, write_recipe):
        path = write_recipe(phpVersion="5.6", dbType="oracle")
        with pytest.raises(ConfigurationInvalid) as exc:
            load_recipe(path)
        assert "phpVersion" in str(exc.value) or "php_version" in str(exc.value)
        assert "oracle" in str(exc.value)

    def test_remote_restore_structure_is_downloaded(self, write_recipe, session):
        url = "https://example.com/structure.json"
        session.route(url, FakeResponse(200, json_data={"courseCategories": {"A": ["c.mbz"]}}))
        recipe = load_recipe(write_recipe(restoreStructure=url), session=session)
        assert recipe.restore_structure.course_categories == {"A": ["c.mbz"]}

    def test_remote_restore_structure_http_error(self, write_recipe, session):
        url = "https://example.com/structure.json"
        session.route(url, FakeResponse(500))
        with pytest.raises(ConfigurationInvalid, match="HTTP 500"):
            load_recipe(write_recipe(restoreStructure=url), session=session)

    def test_remote_restore_structure_unreachable(self, write_recipe, session):
        url = "https://example.com/structure.json"
        session.route(url, requests.ConnectionError("refused"))
        with pytest.raises(ConfigurationInvalid, match="Cannot download"):
            load_recipe(write_recipe(restoreStructure=url), session=session)

    def test_restore_structure_string_must_be_url(self, write_recipe):
        with pytest.raises(ConfigurationInvalid, match="object or a URL"):
            load_recipe(write_recipe(restoreStructure="structure.json"))


class TestResolveRecipeFile:
    def test_url_passthrough(self, write_recipe):
        recipe = load_recipe(write_recipe())
        assert resolve_recipe_file(recipe, "https://x.test/a.mbz") == "https://x.test/a.mbz"

    def test_relative_to_recipe(self, write_recipe, project_dir):
        (project_dir / "backups").mkdir()
        (project_dir / "backups" / "a.mbz").write_bytes(b"x")
        recipe = load_recipe(write_recipe())
        assert resolve_recipe_file(recipe, "backups/a.mbz") == (project_dir / "backups" / "a.mbz").resolve()

    def test_missing(self, write_recipe):
        recipe = load_recipe(write_recipe())
        with pytest.raises(ConfigurationInvalid):
            resolve_recipe_file(recipe, "missing.mbz")


class TestFindChefDir:
    def test_walks_up(self, project_dir):
        (project_dir / ".devchef").mkdir()
        nested = project_dir / "moodle" / "local"
        nested.mkdir(parents=True)
        assert find_chef_dir(nested) == (project_dir / ".devchef").resolve()

    def test_none(self, tmp_path):
        isolated = tmp_path / "isolated"
        isolated.mkdir()
        # tmp_path lives under the system temp dir, which has no .devchef
        assert find_chef_dir(isolated) is None


def test_recipe_round_trips_through_json(write_recipe):
    recipe = load_recipe(write_recipe(plugins=["https://github.com/acme/moodle-local_foo.git~v1"]))
    dumped = json.loads(recipe.model_dump_json(by_alias=True))
    assert dumped["plugins"][0]["branch"] == "v1"
    assert "recipePath" not in dumped
