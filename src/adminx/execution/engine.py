from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable

from ..auth.base import TokenProvider
from ..errors import AuthError, ErrorKind, ScriptHostUnavailableError
from ..models.results import AdminTaskResult, TaskError
from ..utils.cancellation import OperationCancelledError, OperationTimeoutError, wait_cancellable
from .host import ACCESS_TOKEN_ENV, HostResult, ScriptHost, classify_failure

logger = logging.getLogger(__name__)

DEFAULT_EXECUTION_TIMEOUT = 60.0
_REDACTED = "***"


def _scrub(text: str, redact: list[str]) -> str:
    for value in sorted(filter(None, redact), key=len, reverse=True):
        text = text.replace(value, _REDACTED)
    return text


class ExecutionEngine:
    """Run rendered scripts through a :class:`ScriptHost`.

    Executions of the same template id are queued behind one another; other
    template ids run concurrently. Failures are reported in the returned
    :class:`AdminTaskResult`, never raised.
    """

    def __init__(self, host: ScriptHost, *, timeout: float = DEFAULT_EXECUTION_TIMEOUT) -> None:
        self._host = host
        self._timeout = timeout
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, template_id: str) -> asyncio.Lock:
        lock = self._locks.get(template_id)
        if lock is None:
            lock = self._locks[template_id] = asyncio.Lock()
        return lock

    async def execute(
        self,
        template_id: str,
        rendered_script: str,
        session: TokenProvider,
        *,
        dry_run: bool = False,
        cancel_event: asyncio.Event | None = None,
        executed_by: str | None = None,
        display_script: str | None = None,
        redact: Iterable[str] = (),
    ) -> AdminTaskResult:
        """Run ``rendered_script``; the result carries ``display_script`` when given.

        The access token and every string in ``redact`` are scrubbed from the
        captured output.
        """

        shown = display_script if display_script is not None else rendered_script
        if dry_run:
            logger.debug("Dry run for %s; nothing executed", template_id)
            return AdminTaskResult(
                templateId=template_id,
                dryRun=True,
                success=True,
                renderedScript=shown,
                output="",
                executedBy=executed_by,
            )

        started = time.monotonic()
        async with self._lock_for(template_id):
            result = await self._execute_locked(
                template_id, rendered_script, shown, list(redact), session, cancel_event
            )
        return result.model_copy(
            update={
                "duration_ms": int((time.monotonic() - started) * 1000),
                "executed_by": executed_by,
            }
        )

    async def _execute_locked(
        self,
        template_id: str,
        rendered_script: str,
        shown: str,
        redact: list[str],
        session: TokenProvider,
        cancel_event: asyncio.Event | None,
    ) -> AdminTaskResult:
        def failure(kind: ErrorKind, code: str, message: str) -> AdminTaskResult:
            logger.warning("Execution of %s failed (%s): %s", template_id, code, message)
            return AdminTaskResult.failure(
                template_id, kind, message, code=code, rendered_script=shown
            )

        if cancel_event is not None and cancel_event.is_set():
            return failure(ErrorKind.CANCELLED, "cancelled", "Execution cancelled before start")

        try:
            token = await session.get_token()
        except AuthError as exc:
            return failure(exc.kind, exc.kind.value, str(exc))

        logger.info("Executing template %s", template_id)
        try:
            host_result = await wait_cancellable(
                self._host.run(rendered_script, env={ACCESS_TOKEN_ENV: token}),
                cancel_event,
                timeout=self._timeout,
            )
        except OperationCancelledError:
            return failure(ErrorKind.CANCELLED, "cancelled", "Execution cancelled")
        except OperationTimeoutError:
            return failure(
                ErrorKind.EXECUTION, "timeout", f"Script did not finish within {self._timeout:g}s"
            )
        except ScriptHostUnavailableError as exc:
            return failure(ErrorKind.EXECUTION, "host_unavailable", str(exc))
        except OSError as exc:
            return failure(ErrorKind.EXECUTION, "host_failure", f"Script host error: {exc}")

        return self._to_result(template_id, shown, host_result, [token, *redact])

    @staticmethod
    def _to_result(
        template_id: str, rendered_script: str, host_result: HostResult, redact: list[str]
    ) -> AdminTaskResult:
        stdout = _scrub(host_result.stdout, redact)
        stderr = _scrub(host_result.stderr, redact)
        errors: list[TaskError] = []
        if not host_result.ok:
            code = classify_failure(host_result)
            message = stderr.strip().splitlines()[-1] if stderr.strip() else (
                f"Script exited with code {host_result.exit_code}"
            )
            errors.append(TaskError(kind=ErrorKind.EXECUTION, code=code, message=message))
            logger.warning("Template %s exited with %s (%s)", template_id, host_result.exit_code, code)
        return AdminTaskResult(
            templateId=template_id,
            success=host_result.ok,
            renderedScript=rendered_script,
            output=stdout,
            errorOutput=stderr,
            exitCode=host_result.exit_code,
            errors=errors,
        )


__all__ = ["DEFAULT_EXECUTION_TIMEOUT", "ExecutionEngine"]
