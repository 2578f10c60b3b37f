"""
Plugin models — the output of plugin resolution.

``PluginsInfo`` is both the resolver's return value and the record
stored in the on-disk plugin cache.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from devchef.core.models.recipe import PluginDeclaration


class Volume(BaseModel):
    """A plugin source directory mounted into the app container.

    ``path`` is relative to the application root inside the container;
    ``host_path`` is the host directory holding the plugin source.
    """

    path: str
    host_path: str = ""


class ResolvedPlugin(BaseModel):
    """One plugin after resolution."""

    component: str
    path: str
    target_path: str
    volume: Volume
    declaration: PluginDeclaration

    @property
    def plugin_type(self) -> str:
        return self.component.split("_", 1)[0]


class PluginsInfo(BaseModel):
    """Resolved plugins keyed by component name, plus their volumes."""

    plugins: dict[str, ResolvedPlugin] = Field(default_factory=dict)
    volumes: list[Volume] = Field(default_factory=list)

    def declarations(self) -> frozenset[PluginDeclaration]:
        return frozenset(p.declaration for p in self.plugins.values())

    def is_empty(self) -> bool:
        return not self.plugins

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
