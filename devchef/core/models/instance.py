"""
Instance model — a named, persisted sandbox record.

Created on first provisioning, looked up on every later run, and only
removed by an explicit teardown.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from pydantic import BaseModel, Field


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class Instance(BaseModel):
    """One registered sandbox."""

    name: str
    recipe_path: str
    container_prefix: str
    proxy_port: int | None = None
    uuid: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: str = Field(default_factory=_now_iso)

    @property
    def app_container(self) -> str:
        return f"{self.container_prefix}-moodle"

    @property
    def db_container(self) -> str:
        return f"{self.container_prefix}-db"


class InstanceRegistryData(BaseModel):
    """On-disk shape of the instance registry."""

    version: int = 1
    instances: list[Instance] = Field(default_factory=list)
    updated_at: str = Field(default_factory=_now_iso)

    def get(self, name: str) -> Instance | None:
        for inst in self.instances:
            if inst.name == name:
                return inst
        return None

    def touch(self) -> None:
        self.updated_at = _now_iso()
