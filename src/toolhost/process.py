from __future__ import annotations

import asyncio
import codecs
import logging
import os
import signal
from dataclasses import dataclass

from .errors import ProcessTimeoutError

log = logging.getLogger(__name__)

_READ_CHUNK = 4096


@dataclass(frozen=True)
class ExecutionResult:
    stdout: str
    stderr: str
    exit_code: int | None
    truncated: bool = False


class _OutputBudget:
    """Byte budget shared by the stdout and stderr readers of one process."""

    def __init__(self, limit: int) -> None:
        self.remaining = max(0, limit)
        self.truncated = False

    def take(self, data: bytes) -> bytes:
        if len(data) > self.remaining:
            data = data[: self.remaining]
            self.truncated = True
        self.remaining -= len(data)
        return data


def _decode(data: bytes, *, final: bool) -> str:
    # Non-final decoding drops a trailing partial UTF-8 sequence left by truncation.
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    return decoder.decode(data, final=final)


def _kill_group(proc: asyncio.subprocess.Process) -> None:
    # start_new_session=True makes the shell a group leader, so the group id is
    # its pid. The group may outlive the shell when it backgrounded children.
    if not hasattr(os, "killpg"):
        if proc.returncode is None:
            proc.kill()
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass


class ProcessRunner:
    def __init__(self, cwd: str | None = None) -> None:
        self.cwd = cwd

    async def run(self, command: str, timeout_ms: int, max_output_bytes: int) -> ExecutionResult:
        log.debug("spawning %r (timeout=%sms, max_output=%sB)", command, timeout_ms, max_output_bytes)
        proc = await asyncio.create_subprocess_shell(
            command,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.cwd,
            start_new_session=True,
        )
        budget = _OutputBudget(max_output_bytes)
        stdout = bytearray()
        stderr = bytearray()
        try:
            try:
                exit_code = await asyncio.wait_for(
                    self._collect(proc, stdout, stderr, budget), timeout=timeout_ms / 1000
                )
            except asyncio.TimeoutError:
                log.warning("command timed out after %sms: %r", timeout_ms, command)
                partial = ExecutionResult(
                    stdout=_decode(bytes(stdout), final=False),
                    stderr=_decode(bytes(stderr), final=False),
                    exit_code=None,
                    truncated=budget.truncated,
                )
                raise ProcessTimeoutError(
                    f"Command timed out after {timeout_ms} ms: {command}", result=partial
                ) from None
        finally:
            _kill_group(proc)
            await proc.wait()

        if budget.truncated:
            log.warning("output of %r truncated at %s bytes", command, max_output_bytes)
        return ExecutionResult(
            stdout=_decode(bytes(stdout), final=not budget.truncated),
            stderr=_decode(bytes(stderr), final=not budget.truncated),
            exit_code=None if budget.truncated else exit_code,
            truncated=budget.truncated,
        )

    async def _collect(
        self,
        proc: asyncio.subprocess.Process,
        stdout: bytearray,
        stderr: bytearray,
        budget: _OutputBudget,
    ) -> int:
        await asyncio.gather(
            self._drain(proc, proc.stdout, stdout, budget),
            self._drain(proc, proc.stderr, stderr, budget),
        )
        return await proc.wait()

    async def _drain(
        self,
        proc: asyncio.subprocess.Process,
        stream: asyncio.StreamReader | None,
        sink: bytearray,
        budget: _OutputBudget,
    ) -> None:
        if stream is None:
            return
        while True:
            data = await stream.read(_READ_CHUNK)
            if not data:
                return
            sink.extend(budget.take(data))
            if budget.truncated:
                _kill_group(proc)
                return
