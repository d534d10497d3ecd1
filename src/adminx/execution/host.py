"""Script hosts that run rendered scripts out of process."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import re
import shutil
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Protocol

from ..errors import ScriptHostUnavailableError

logger = logging.getLogger(__name__)

ACCESS_TOKEN_ENV = "ADMINX_ACCESS_TOKEN"
POWERSHELL_ARGS = ("-NoLogo", "-NoProfile", "-NonInteractive", "-Command", "-")


@dataclass(frozen=True)
class HostResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class ScriptHost(Protocol):
    async def run(self, script: str, *, env: Mapping[str, str]) -> HostResult: ...


class PowerShellHost:
    """Run scripts through ``pwsh`` with the script text on stdin.

    Cancelling :meth:`run` kills the child process.
    """

    def __init__(self, executable: str = "pwsh", args: Sequence[str] = POWERSHELL_ARGS) -> None:
        self.executable = executable
        self.args = tuple(args)

    def resolve_executable(self) -> str:
        path = shutil.which(self.executable)
        if path is None:
            raise ScriptHostUnavailableError(
                f"PowerShell executable '{self.executable}' was not found on PATH"
            )
        return path

    async def run(self, script: str, *, env: Mapping[str, str]) -> HostResult:
        executable = self.resolve_executable()
        try:
            proc = await asyncio.create_subprocess_exec(
                executable,
                *self.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env={**os.environ, **env},
            )
        except OSError as exc:
            raise ScriptHostUnavailableError(f"Unable to start {executable}: {exc}") from exc

        logger.debug("Started %s (pid %s)", executable, proc.pid)
        # Statements read from stdin run once a blank line closes the last block.
        payload = (script.rstrip("\n") + "\n\n").encode("utf-8")
        try:
            stdout, stderr = await proc.communicate(payload)
        except asyncio.CancelledError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()
            logger.info("Killed %s (pid %s) after cancellation", executable, proc.pid)
            raise
        return HostResult(
            exit_code=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )


_FAILURE_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("rate_limited", re.compile(r"TooManyRequests|\b429\b|throttl", re.IGNORECASE)),
    (
        "permission_denied",
        re.compile(
            r"Authorization_RequestDenied|Insufficient privileges|Forbidden|\b403\b|AccessDenied",
            re.IGNORECASE,
        ),
    ),
    (
        "transient_network",
        re.compile(
            r"timed? ?out|No such host|name resolution|connection (was )?(closed|reset|refused)"
            r"|ServiceUnavailable|\b503\b|\b504\b",
            re.IGNORECASE,
        ),
    ),
)


def classify_failure(result: HostResult) -> str:
    """Map a failed run to ``rate_limited``, ``permission_denied``, ``transient_network``
    or ``host_failure``."""

    text = f"{result.stderr}\n{result.stdout}"
    for code, pattern in _FAILURE_PATTERNS:
        if pattern.search(text):
            return code
    return "host_failure"


__all__ = [
    "ACCESS_TOKEN_ENV",
    "HostResult",
    "PowerShellHost",
    "ScriptHost",
    "classify_failure",
]
