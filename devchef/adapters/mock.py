"""
Mock command runner — records argv instead of spawning processes.

Used in tests. By default every command succeeds with empty output;
responses can be scripted per command fragment.
"""

from __future__ import annotations

import subprocess
from collections.abc import Callable, Generator, Mapping
from dataclasses import dataclass
from pathlib import Path

from devchef.adapters.shell.command import CommandRunner, StreamLine
from devchef.core.errors import ExternalProcessFailure

SideEffect = Callable[[list[str]], None]


@dataclass
class _Rule:
    fragment: str
    results: list[tuple[int, str, str]]
    side_effect: SideEffect | None = None

    def next_result(self) -> tuple[int, str, str]:
        # The last scripted result repeats forever
        if len(self.results) > 1:
            return self.results.pop(0)
        return self.results[0]


@dataclass
class MockCall:
    args: list[str]
    cwd: Path | None = None
    env: dict[str, str] | None = None
    input: str | None = None
    live: bool = False

    @property
    def line(self) -> str:
        return " ".join(self.args)


class MockRunner(CommandRunner):
    """Universal mock runner for testing.

    A rule matches when its fragment is a substring of the joined argv.
    The most recently added matching rule wins.
    """

    def __init__(self, echo: Callable[[str], None] | None = None):
        super().__init__(echo=echo)
        self._rules: list[_Rule] = []
        self._call_log: list[MockCall] = []

    @property
    def call_log(self) -> list[MockCall]:
        """Every command this mock has received, in order."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def set_response(
        self,
        fragment: str,
        returncode: int = 0,
        stdout: str = "",
        stderr: str = "",
        *,
        sequence: list[int] | None = None,
        side_effect: SideEffect | None = None,
    ) -> None:
        """Script the result for commands containing *fragment*.

        *sequence* gives successive return codes (the last one repeats).
        """
        codes = sequence or [returncode]
        results = [(code, stdout, stderr) for code in codes]
        self._rules.append(_Rule(fragment, results, side_effect))

    def set_failure(self, fragment: str, returncode: int = 1, stderr: str = "Mock failure") -> None:
        self.set_response(fragment, returncode=returncode, stderr=stderr)

    def calls_matching(self, fragment: str) -> list[MockCall]:
        return [c for c in self._call_log if fragment in c.line]

    def index_of(self, fragment: str) -> int:
        """Position of the first call containing *fragment* (-1 if none)."""
        for i, call in enumerate(self._call_log):
            if fragment in call.line:
                return i
        return -1

    def reset(self) -> None:
        """Clear call log and scripted responses."""
        self._call_log.clear()
        self._rules.clear()

    def _respond(self, call: MockCall) -> tuple[int, str, str]:
        self._call_log.append(call)
        for rule in reversed(self._rules):
            if rule.fragment in call.line:
                if rule.side_effect:
                    rule.side_effect(call.args)
                return rule.next_result()
        return 0, "", ""

    # ── CommandRunner interface ─────────────────────────────────

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
        call = MockCall(list(args), cwd=cwd, env=dict(env) if env else None, input=input)
        code, stdout, stderr = self._respond(call)
        if check and code != 0:
            raise ExternalProcessFailure(args, code, (stderr or stdout).strip())
        return subprocess.CompletedProcess(args, code, stdout, stderr)

    def stream(
        self,
        args: list[str],
        *,
        cwd: Path | None = None,
        timeout: int = 600,
    ) -> Generator[StreamLine, None, None]:
        code, stdout, stderr = self._respond(MockCall(list(args), cwd=cwd, live=True))
        for line in stdout.splitlines():
            yield ("stdout", line)
        for line in stderr.splitlines():
            yield ("stderr", line)
        yield ("exit", code)
