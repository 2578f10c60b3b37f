"""
Shared test fixtures and configuration.
"""

import json
from pathlib import Path

import pytest
from fakes import FakeSession

from devchef.adapters.mock import MockRunner
from devchef.core.config.settings import Settings
from devchef.core.context import RunContext
from devchef.core.reliability.retry import RetryPolicy


@pytest.fixture
def runner() -> MockRunner:
    return MockRunner()


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def settings() -> Settings:
    return Settings()


@pytest.fixture
def run_ctx(tmp_path: Path, runner: MockRunner, session: FakeSession, settings: Settings) -> RunContext:
    """A RunContext wired to the mock runner and fake HTTP session."""
    return RunContext.create(
        tmp_path / "home",
        runner=runner,
        session=session,
        settings=settings,
        token="test-token",
        db_wait=RetryPolicy(max_attempts=5, sleep=lambda _: None),
    )


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    path = tmp_path / "project"
    path.mkdir()
    return path


@pytest.fixture
def write_recipe(project_dir: Path):
    """Write a recipe JSON into the project dir and return its path."""

    def _write(filename: str = "recipe.json", **fields) -> Path:
        data = {
            "name": "Demo",
            "moodleTag": "v4.5.0",
            "phpVersion": "8.2",
            "containerPrefix": "demo",
            "port": 8080,
        }
        data.update(fields)
        path = project_dir / filename
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        return path

    return _write
