"""
Infrastructure descriptor — everything the container renderers need.

Rebuilt from scratch on every run from the recipe, the resolved
plugins and the allocated ports. Never persisted as state.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from devchef.core.models.plugin import Volume


class BakedPlugin(BaseModel):
    """A plugin cloned into the image at build time."""

    repo: str
    branch: str
    path: str


class InfrastructureDescriptor(BaseModel):
    """Inputs for rendering the Dockerfile and compose file."""

    name: str
    # Compose project name, also the prefix of the built image
    project: str
    app_container: str
    db_container: str
    network: str

    php_version: str
    moodle_tag: str
    app_root: str = "/var/www/html/moodle"
    uses_public_folder: bool = False

    host: str
    behat_host: str | None = None
    www_root: str
    host_port: int
    proxy_port: int | None = None

    db_type: str
    db_image: str
    db_user: str
    db_password: str
    db_name: str
    db_host_port: int | None = None
    db_environment: dict[str, str] = Field(default_factory=dict)
    db_container_port: int = 5432
    db_data_dir: str = "/var/lib/postgresql/data"

    developer: bool = False
    include_behat: bool = False
    include_xdebug: bool = False
    xdebug_mode: str = "debug"
    include_phpunit: bool = False

    # Mount mode fills volumes, bake mode fills plugins_for_docker; never both
    volumes: list[Volume] = Field(default_factory=list)
    plugins_for_docker: list[BakedPlugin] = Field(default_factory=list)

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
