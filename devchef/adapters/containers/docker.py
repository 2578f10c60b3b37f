"""
Docker adapter — container, network and compose operations.

Uses the docker CLI through the shared ``CommandRunner``, never the
Docker API directly.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from devchef.adapters.shell.command import CommandRunner
from devchef.core.errors import ExternalProcessFailure

logger = logging.getLogger(__name__)


class DockerRuntime:
    """Thin wrapper around ``docker`` / ``docker compose``."""

    def __init__(self, runner: CommandRunner):
        self.runner = runner

    def _docker(self, *args: str, check: bool = True, **kwargs: Any):
        return self.runner.run(["docker", *args], check=check, **kwargs)

    # ── Containers ──────────────────────────────────────────────

    def list_containers(self, all: bool = False) -> list[dict[str, Any]]:
        """Parse ``docker ps --format {{json .}}`` into dicts."""
        args = ["ps", "--format", "{{json .}}"]
        if all:
            args.insert(1, "-a")
        result = self._docker(*args)
        containers = []
        for line in result.stdout.strip().splitlines():
            if not line.strip():
                continue
            try:
                containers.append(json.loads(line))
            except json.JSONDecodeError:
                logger.debug("Skipping unparseable docker ps line: %s", line)
        return containers

    def container_names(self, all: bool = False) -> list[str]:
        return [c.get("Names", "") for c in self.list_containers(all=all)]

    def inspect(self, name: str) -> dict[str, Any]:
        result = self._docker("inspect", name)
        data = json.loads(result.stdout or "[]")
        return data[0] if data else {}

    def find_port_owner(self, port: int) -> str | None:
        """Name of the running container publishing host *port*, or None."""
        for name in self.container_names():
            info = self.inspect(name)
            bindings = (info.get("HostConfig") or {}).get("PortBindings") or {}
            for host_bindings in bindings.values():
                for binding in host_bindings or []:
                    if str(binding.get("HostPort", "")) == str(port):
                        return name
        return None

    def stop(self, name: str) -> None:
        logger.info("Stopping container %s", name)
        self._docker("stop", name)

    def remove(self, name: str) -> None:
        logger.info("Removing container %s", name)
        self._docker("rm", "-f", name)

    def start(self, name: str) -> None:
        logger.info("Starting container %s", name)
        self._docker("start", name)

    def container_volumes(self, name: str) -> list[str]:
        """Named volumes mounted into *name* (bind mounts excluded)."""
        mounts = self.inspect(name).get("Mounts") or []
        return [m["Name"] for m in mounts if m.get("Type") == "volume" and m.get("Name")]

    def remove_volume(self, volume: str) -> None:
        self._docker("volume", "rm", volume)

    # ── Networks ────────────────────────────────────────────────

    def network_exists(self, network: str) -> bool:
        result = self._docker("network", "inspect", network, check=False)
        return result.returncode == 0

    def create_network(self, network: str) -> None:
        logger.info("Creating network %s", network)
        self._docker("network", "create", network)

    def connect(self, network: str, container: str, aliases: list[str] | None = None) -> None:
        args = ["network", "connect"]
        for alias in aliases or []:
            args += ["--alias", alias]
        args += [network, container]
        result = self._docker(*args, check=False)
        if result.returncode != 0:
            # Reconnecting an attached container is fine on re-runs
            if "already exists" in (result.stderr or ""):
                logger.debug("%s already attached to %s", container, network)
                return
            raise ExternalProcessFailure(["docker", *args], result.returncode, result.stderr)

    # ── Exec / copy ─────────────────────────────────────────────

    def exec(
        self,
        container: str,
        command: list[str],
        env: dict[str, str] | None = None,
        check: bool = True,
        timeout: int | None = 1800,
        user: str | None = None,
    ):
        args = ["exec"]
        if user:
            args += ["--user", user]
        for key, value in (env or {}).items():
            args += ["-e", f"{key}={value}"]
        args += [container, *command]
        return self._docker(*args, check=check, timeout=timeout)

    def copy_to(self, container: str, src: Path, dest: str) -> None:
        self._docker("cp", str(src), f"{container}:{dest}")

    def download_in_container(self, container: str, url: str, dest: str) -> None:
        """Fetch *url* to *dest* from inside the container and verify it is non-empty."""
        logger.info("Downloading %s into %s:%s", url, container, dest)
        self.exec(container, ["curl", "-L", "--fail", "--silent", "--show-error", "-o", dest, url])
        self.exec(container, ["test", "-s", dest])

    def normalize_csv(self, container: str, path: str) -> None:
        """Strip a UTF-8 BOM and CRLF line endings from a CSV in the container."""
        self.exec(container, ["sed", "-i", "-e", "1s/^\\xEF\\xBB\\xBF//", "-e", "s/\\r$//", path])

    # ── Compose ─────────────────────────────────────────────────

    def compose_up(self, project_dir: Path, compose_file: str = "main.compose.yml") -> None:
        self.runner.run_live(
            [
                "docker", "compose",
                "--project-directory", str(project_dir),
                "-f", compose_file,
                "up", "-d", "--force-recreate", "--build",
            ],
            cwd=project_dir,
        )

    def compose_build(self, project_dir: Path, compose_file: str = "main.compose.yml") -> None:
        self.runner.run_live(
            [
                "docker", "compose",
                "--project-directory", str(project_dir),
                "-f", compose_file,
                "build",
            ],
            cwd=project_dir,
        )

    # ── Registry ────────────────────────────────────────────────

    def login(self, registry: str, username: str, secret: str) -> None:
        logger.info("Logging in to %s as %s", registry, username)
        self._docker("login", registry, "-u", username, "--password-stdin", input=secret)

    def tag(self, source: str, target: str) -> None:
        self._docker("tag", source, target)

    def push(self, image: str) -> None:
        self.runner.run_live(["docker", "push", image])
