"""
Process executor — the one place devchef spawns subprocesses.

Everything that talks to docker, git or php goes through a
``CommandRunner`` so tests can swap in a fake and record argv
instead of touching the host.

Two modes:

    run()       capture stdout/stderr, return CompletedProcess
    run_live()  stream lines to an echo callback as they arrive
"""

from __future__ import annotations

import logging
import selectors
import subprocess
from collections import deque
from collections.abc import Callable, Generator, Mapping
from pathlib import Path
from typing import Literal

from devchef.core.errors import ExternalProcessFailure

logger = logging.getLogger(__name__)

StreamLine = tuple[Literal["stdout", "stderr", "exit"], str | int]

# Lines of output kept for the error message when a live command fails
_TAIL_LINES = 40


class CommandRunner:
    """Run external commands with captured or streamed output."""

    def __init__(self, echo: Callable[[str], None] | None = None):
        self._echo = echo

    def run(
        self,
        args: list[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        input: str | None = None,
        timeout: int | None = 300,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        """Run *args* and capture its output.

        Raises:
            ExternalProcessFailure: non-zero exit (when *check*) or timeout.
        """
        logger.debug("Executing: %s (cwd=%s)", " ".join(args), cwd)
        try:
            result = subprocess.run(
                args,
                cwd=str(cwd) if cwd else None,
                env=dict(env) if env is not None else None,
                input=input,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ExternalProcessFailure(args, -1, f"Timed out after {timeout}s") from e
        except FileNotFoundError as e:
            raise ExternalProcessFailure(args, 127, f"Executable not found: {args[0]}") from e

        if check and result.returncode != 0:
            output = (result.stderr or result.stdout or "").strip()
            raise ExternalProcessFailure(args, result.returncode, output)
        return result

    def stream(
        self,
        args: list[str],
        *,
        cwd: Path | None = None,
        timeout: int = 600,
    ) -> Generator[StreamLine, None, None]:
        """Run *args* via Popen and yield lines from stdout/stderr in real time.

        Yields:
            ("stdout", line)  a line from stdout (trailing newline stripped)
            ("stderr", line)  a line from stderr (trailing newline stripped)
            ("exit", code)    process exit code (always last)
        """
        logger.debug("Streaming command: %s (cwd=%s, timeout=%ss)", args, cwd, timeout)
        try:
            proc = subprocess.Popen(
                args,
                cwd=str(cwd) if cwd else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                bufsize=1,  # line-buffered
            )
        except FileNotFoundError as e:
            raise ExternalProcessFailure(args, 127, f"Executable not found: {args[0]}") from e

        # Compose writes progress to stderr, so both pipes are read together
        sel = selectors.DefaultSelector()
        try:
            if proc.stdout:
                sel.register(proc.stdout, selectors.EVENT_READ, "stdout")
            if proc.stderr:
                sel.register(proc.stderr, selectors.EVENT_READ, "stderr")

            open_streams = 2
            while open_streams > 0:
                events = sel.select(timeout=timeout)
                if not events:
                    proc.kill()
                    proc.wait()
                    yield ("stderr", f"Timed out after {timeout}s, process killed")
                    yield ("exit", -1)
                    return

                for key, _ in events:
                    source: str = key.data
                    line = key.fileobj.readline()  # type: ignore[union-attr]
                    if not line:
                        sel.unregister(key.fileobj)
                        open_streams -= 1
                        continue
                    yield (source, line.rstrip("\n"))  # type: ignore[misc]
        finally:
            sel.close()

        proc.wait()
        yield ("exit", proc.returncode)

    def run_live(
        self,
        args: list[str],
        *,
        cwd: Path | None = None,
        timeout: int = 1800,
    ) -> None:
        """Run *args*, echoing output as it arrives.

        Raises:
            ExternalProcessFailure: non-zero exit, with the last lines of output.
        """
        tail: deque[str] = deque(maxlen=_TAIL_LINES)
        code = 0
        for source, value in self.stream(args, cwd=cwd, timeout=timeout):
            if source == "exit":
                code = int(value)
                continue
            tail.append(str(value))
            if self._echo:
                self._echo(str(value))
        if code != 0:
            raise ExternalProcessFailure(args, code, "\n".join(tail))
