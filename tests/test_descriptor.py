"""
Tests for descriptor building and rendering.
"""

import yaml

from devchef.core.models.plugin import PluginsInfo, ResolvedPlugin, Volume
from devchef.core.models.recipe import PluginDeclaration, Recipe
from devchef.core.services.database import dialect_for
from devchef.core.services.descriptor_builder import NETWORK_NAME, build_descriptor
from devchef.core.services.descriptor_render import (
    compose_dict,
    render_compose,
    render_dockerfile,
    render_moodle_config,
    write_descriptors,
)


def _recipe(**fields) -> Recipe:
    data = {"moodleTag": "v4.5.0", "phpVersion": "8.2", "containerPrefix": "demo", "port": 8080}
    data.update(fields)
    return Recipe.model_validate(data)


def _plugins() -> PluginsInfo:
    decl = PluginDeclaration(repo="https://github.com/acme/moodle-local_foo.git", branch="v1.2")
    plugin = ResolvedPlugin(
        component="local_foo",
        path="/local/foo",
        target_path="/src/moodle/local/foo",
        volume=Volume(path="/local/foo", host_path="/src/moodle/local/foo"),
        declaration=decl,
    )
    return PluginsInfo(plugins={"local_foo": plugin}, volumes=[plugin.volume])


class TestBuildDescriptor:
    def test_mount_mode_uses_volumes_only(self):
        desc = build_descriptor(_recipe(mountPlugins=True), _plugins(), host_port=8080)
        assert [v.path for v in desc.volumes] == ["/local/foo"]
        assert desc.plugins_for_docker == []

    def test_bake_mode_uses_image_plugins_only(self):
        desc = build_descriptor(_recipe(), _plugins(), host_port=8080)
        assert desc.volumes == []
        assert [(p.repo, p.branch, p.path) for p in desc.plugins_for_docker] == [
            ("https://github.com/acme/moodle-local_foo.git", "v1.2", "/local/foo"),
        ]

    def test_identity_and_ports(self):
        desc = build_descriptor(_recipe(name="My Site"), PluginsInfo(), host_port=8105, proxy_port=8105)
        assert desc.name == "My Site"
        assert desc.app_container == "demo-moodle"
        assert desc.db_container == "demo-db"
        assert desc.network == NETWORK_NAME
        assert desc.host_port == 8105
        assert desc.proxy_port == 8105
        assert desc.www_root == "http://localhost:8080"

    def test_name_defaults_to_prefix(self):
        assert build_descriptor(_recipe(), PluginsInfo(), host_port=80).name == "demo"

    def test_database_fields_follow_dialect(self):
        desc = build_descriptor(_recipe(dbType="mariadb", dbVersion="10.11"), PluginsInfo(), host_port=80)
        assert desc.db_image == "mariadb:10.11"
        assert desc.db_container_port == 3306
        assert desc.db_environment["MARIADB_DATABASE"] == "demo-moodle"

    def test_default_db_versions(self):
        assert dialect_for("pgsql").image(None) == "postgres:16"
        assert dialect_for("mysqli").image(None) == "mysql:8.4"

    def test_pure(self):
        recipe, plugins = _recipe(mountPlugins=True), _plugins()
        a = build_descriptor(recipe, plugins, host_port=8080, public=True)
        b = build_descriptor(recipe, plugins, host_port=8080, public=True)
        assert a.to_dict() == b.to_dict()


class TestRenderCompose:
    def test_services(self):
        desc = build_descriptor(_recipe(mountPlugins=True), _plugins(), host_port=8080)
        data = compose_dict(desc)
        app, db = data["services"]["moodle"], data["services"]["db"]

        assert app["container_name"] == "demo-moodle"
        assert app["ports"] == ["8080:80"]
        assert app["volumes"] == ["/src/moodle/local/foo:/var/www/html/moodle/local/foo"]
        assert db["image"] == "postgres:16"
        assert db["environment"]["POSTGRES_DB"] == "demo-moodle"
        assert "ports" not in db
        assert "selenium" not in data["services"]

    def test_db_host_port_and_selenium(self):
        desc = build_descriptor(
            _recipe(dbHostPort=15432, includeBehat=True, host="moodle.test"), PluginsInfo(), host_port=8080,
        )
        data = compose_dict(desc)
        assert data["services"]["db"]["ports"] == ["15432:5432"]
        assert data["services"]["selenium"]["container_name"] == "demo-moodle-selenium"

    def test_yaml_is_parseable(self):
        desc = build_descriptor(_recipe(), _plugins(), host_port=8080)
        rendered = render_compose(desc)
        assert rendered.startswith("# Generated by devchef")
        assert yaml.safe_load(rendered) == compose_dict(desc)


class TestRenderDockerfile:
    def test_base_and_moodle_tag(self):
        text = render_dockerfile(build_descriptor(_recipe(phpVersion="8.3"), PluginsInfo(), host_port=80))
        assert "FROM moodlehq/moodle-php-apache:8.3" in text
        assert "ARG MOODLE_TAG=v4.5.0" in text
        assert "xdebug" not in text

    def test_baked_plugins_are_cloned(self):
        text = render_dockerfile(build_descriptor(_recipe(), _plugins(), host_port=80))
        assert (
            'git clone --depth 1 --branch "v1.2" https://github.com/acme/moodle-local_foo.git '
            "/var/www/html/moodle/local/foo"
        ) in text

    def test_mounted_plugins_are_not_cloned(self):
        text = render_dockerfile(build_descriptor(_recipe(mountPlugins=True), _plugins(), host_port=80))
        assert "moodle-local_foo" not in text

    def test_toggles(self):
        text = render_dockerfile(build_descriptor(
            _recipe(includeXdebug=True, xdebugMode="debug,coverage", includePhpUnit=True), PluginsInfo(), host_port=80,
        ))
        assert "xdebug.mode=debug,coverage" in text
        assert "getcomposer.org" in text
        assert "/var/www/phpunitdata" in text


class TestRenderConfig:
    def test_core_settings(self):
        text = render_moodle_config(build_descriptor(_recipe(), PluginsInfo(), host_port=8080))
        assert "$CFG->dbtype = 'pgsql';" in text
        assert "$CFG->dbhost = 'demo-db';" in text
        assert "$CFG->wwwroot = 'http://localhost:8080';" in text
        assert "$CFG->directorypermissions = 02777;" in text
        assert text.rstrip().endswith("require_once(__DIR__ . '/lib/setup.php');")

    def test_behat_settings(self):
        text = render_moodle_config(build_descriptor(
            _recipe(includeBehat=True, host="moodle.test"), PluginsInfo(), host_port=8080,
        ))
        assert "$CFG->behat_wwwroot = 'http://moodle.test.behat:8080';" in text
        assert "demo-moodle-selenium:4444" in text

    def test_developer_mode(self):
        text = render_moodle_config(build_descriptor(_recipe(developer=True), PluginsInfo(), host_port=80))
        assert "$CFG->debugdisplay = 1;" in text

    def test_quotes_are_escaped(self):
        text = render_moodle_config(build_descriptor(_recipe(dbPassword="it's"), PluginsInfo(), host_port=80))
        assert "$CFG->dbpass = 'it\\'s';" in text


def test_write_descriptors_replaces_output(tmp_path):
    out = tmp_path / "docker"
    desc = build_descriptor(_recipe(), PluginsInfo(), host_port=8080)
    written = write_descriptors(desc, out)
    assert sorted(p.name for p in written) == ["Dockerfile", "config.php", "main.compose.yml"]

    changed = build_descriptor(_recipe(port=9090), PluginsInfo(), host_port=9090)
    write_descriptors(changed, out)
    assert "9090:80" in (out / "main.compose.yml").read_text()
    assert "8080" not in (out / "main.compose.yml").read_text()
