"""
Descriptor rendering — Dockerfile, compose file and Moodle config.php.

All three are regenerated in full on every run from the in-memory
``InfrastructureDescriptor``; nothing here reads the previous output.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from devchef.core.models.descriptor import InfrastructureDescriptor

logger = logging.getLogger(__name__)

COMPOSE_FILE = "main.compose.yml"
DOCKERFILE = "Dockerfile"
CONFIG_FILE = "config.php"

MOODLE_REPO = "https://github.com/moodle/moodle.git"
MOODLEDATA = "/var/www/moodledata"
BEHAT_DATAROOT = "/var/www/behatdata"
PHPUNIT_DATAROOT = "/var/www/phpunitdata"

_HEADER = "# Generated by devchef, do not edit. Re-run `devchef up` instead.\n"


# ── Dockerfile ──────────────────────────────────────────────────

_DOCKERFILE_BASE = """\
FROM moodlehq/moodle-php-apache:{php_version}

ARG MOODLE_TAG={moodle_tag}

RUN apt-get update \\
    && apt-get install -y --no-install-recommends git curl unzip \\
    && rm -rf /var/lib/apt/lists/*

RUN git clone --depth 1 --branch "$MOODLE_TAG" {moodle_repo} {app_root}

RUN mkdir -p {moodledata} && chown -R www-data:www-data {moodledata}
"""

_DOCKERFILE_XDEBUG = """\
RUN pecl install xdebug && docker-php-ext-enable xdebug \\
    && printf "xdebug.mode={mode}\\nxdebug.client_host=host.docker.internal\\nxdebug.start_with_request=yes\\n" \\
       > /usr/local/etc/php/conf.d/zz-xdebug.ini
"""

_DOCKERFILE_TAIL = """\
COPY {config_file} {app_root}/config.php
RUN chown -R www-data:www-data {app_root}

WORKDIR {app_root}
"""


def render_dockerfile(desc: InfrastructureDescriptor) -> str:
    """Build instructions for the app image."""
    parts = [
        _HEADER,
        _DOCKERFILE_BASE.format(
            php_version=desc.php_version,
            moodle_tag=desc.moodle_tag,
            moodle_repo=MOODLE_REPO,
            app_root=desc.app_root,
            moodledata=MOODLEDATA,
        ),
    ]

    if desc.include_behat or desc.include_phpunit:
        dirs = []
        if desc.include_behat:
            dirs.append(BEHAT_DATAROOT)
        if desc.include_phpunit:
            dirs.append(PHPUNIT_DATAROOT)
        parts.append(f"RUN mkdir -p {' '.join(dirs)} && chown -R www-data:www-data {' '.join(dirs)}\n")

    for plugin in desc.plugins_for_docker:
        dest = f"{desc.app_root}{plugin.path}"
        parts.append(
            f'RUN git clone --depth 1 --branch "{plugin.branch}" {plugin.repo} {dest} '
            f"&& rm -rf {dest}/.git\n"
        )

    if desc.include_xdebug:
        parts.append(_DOCKERFILE_XDEBUG.format(mode=desc.xdebug_mode))

    if desc.include_phpunit:
        parts.append(
            "RUN curl -sS https://getcomposer.org/installer "
            "| php -- --install-dir=/usr/local/bin --filename=composer\n"
        )

    parts.append(_DOCKERFILE_TAIL.format(config_file=CONFIG_FILE, app_root=desc.app_root))
    return "\n".join(parts)


# ── Compose ─────────────────────────────────────────────────────


def compose_dict(desc: InfrastructureDescriptor) -> dict[str, Any]:
    app: dict[str, Any] = {
        "build": {"context": ".", "dockerfile": DOCKERFILE},
        "image": f"{desc.project}-moodle:latest",
        "container_name": desc.app_container,
        "ports": [f"{desc.host_port}:80"],
        "depends_on": ["db"],
        "restart": "unless-stopped",
    }
    if desc.volumes:
        app["volumes"] = [f"{v.host_path}:{desc.app_root}{v.path}" for v in desc.volumes]
    if desc.include_xdebug:
        app["extra_hosts"] = ["host.docker.internal:host-gateway"]

    db: dict[str, Any] = {
        "image": desc.db_image,
        "container_name": desc.db_container,
        "environment": dict(desc.db_environment),
        "volumes": [f"{desc.db_container}-data:{desc.db_data_dir}"],
        "restart": "unless-stopped",
    }
    if desc.db_host_port:
        db["ports"] = [f"{desc.db_host_port}:{desc.db_container_port}"]

    services: dict[str, Any] = {"moodle": app, "db": db}

    if desc.include_behat:
        services["selenium"] = {
            "image": "selenium/standalone-chrome:latest",
            "container_name": f"{desc.app_container}-selenium",
            "shm_size": "2gb",
            "restart": "unless-stopped",
        }

    return {
        "name": desc.project,
        "services": services,
        "volumes": {f"{desc.db_container}-data": {}},
    }


def render_compose(desc: InfrastructureDescriptor) -> str:
    return _HEADER + yaml.dump(
        compose_dict(desc),
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )


# ── config.php ──────────────────────────────────────────────────


def _php(value: Any) -> str:
    """PHP literal for a str/bool/int."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    return "'" + str(value).replace("\\", "\\\\").replace("'", "\\'") + "'"


def render_moodle_config(desc: InfrastructureDescriptor) -> str:
    settings: list[tuple[str, Any]] = [
        ("dbtype", desc.db_type),
        ("dblibrary", "native"),
        ("dbhost", desc.db_container),
        ("dbname", desc.db_name),
        ("dbuser", desc.db_user),
        ("dbpass", desc.db_password),
        ("prefix", "mdl_"),
        ("wwwroot", desc.www_root),
        ("dataroot", MOODLEDATA),
    ]
    if desc.include_behat and desc.behat_host:
        behat_root = desc.www_root.replace(f"://{desc.host}", f"://{desc.behat_host}", 1)
        settings += [
            ("behat_wwwroot", behat_root),
            ("behat_dataroot", BEHAT_DATAROOT),
            ("behat_prefix", "bht_"),
        ]
    if desc.include_phpunit:
        settings += [("phpunit_dataroot", PHPUNIT_DATAROOT), ("phpunit_prefix", "phpu_")]

    lines = [
        "<?php",
        "// Generated by devchef, do not edit.",
        "unset($CFG);",
        "global $CFG;",
        "$CFG = new stdClass();",
        "",
    ]
    lines += [f"$CFG->{key} = {_php(value)};" for key, value in settings]
    lines.append("$CFG->directorypermissions = 02777;")
    lines.append(f"$CFG->dboptions = {_php_array({'dbpersist': False, 'dbport': ''})};")

    if desc.include_behat:
        profiles = {"default": {"browser": "chrome", "wd_host": f"http://{desc.app_container}-selenium:4444/wd/hub"}}
        lines.append(f"$CFG->behat_profiles = json_decode({_php(json.dumps(profiles))}, true);")

    if desc.developer:
        lines += [
            "",
            "@error_reporting(E_ALL | E_STRICT);",
            "@ini_set('display_errors', '1');",
            "$CFG->debug = (E_ALL | E_STRICT);",
            "$CFG->debugdisplay = 1;",
            "$CFG->cachejs = false;",
            "$CFG->themedesignermode = true;",
        ]

    lines += ["", "require_once(__DIR__ . '/lib/setup.php');", ""]
    return "\n".join(lines)


def _php_array(values: dict[str, Any]) -> str:
    inner = ", ".join(f"{_php(k)} => {_php(v)}" for k, v in values.items())
    return f"[{inner}]"


# ── Writing ─────────────────────────────────────────────────────


def write_descriptors(desc: InfrastructureDescriptor, out_dir: Path) -> list[Path]:
    """Render every descriptor into *out_dir*, replacing what was there."""
    out_dir.mkdir(parents=True, exist_ok=True)
    rendered = {
        DOCKERFILE: render_dockerfile(desc),
        COMPOSE_FILE: render_compose(desc),
        CONFIG_FILE: render_moodle_config(desc),
    }
    written = []
    for name, content in rendered.items():
        path = out_dir / name
        path.write_text(content, encoding="utf-8")
        written.append(path)
    logger.info("Rendered %s into %s", ", ".join(rendered), out_dir)
    return written
