"""
Domain models — Pydantic types for devchef.

    from devchef.core.models import Recipe, PluginsInfo, Instance, InfrastructureDescriptor
"""

from devchef.core.models.descriptor import BakedPlugin, InfrastructureDescriptor
from devchef.core.models.instance import Instance, InstanceRegistryData
from devchef.core.models.plugin import PluginsInfo, ResolvedPlugin, Volume
from devchef.core.models.recipe import (
    PluginDeclaration,
    Recipe,
    RestoreStructure,
    SampleDataSpec,
)

__all__ = [
    "BakedPlugin",
    "InfrastructureDescriptor",
    "Instance",
    "InstanceRegistryData",
    "PluginDeclaration",
    "PluginsInfo",
    "Recipe",
    "ResolvedPlugin",
    "RestoreStructure",
    "SampleDataSpec",
    "Volume",
]
