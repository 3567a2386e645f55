"""Per-host failover daemon configuration.

Rendering is delegated to an operator-supplied executable that receives the
host index and address as its last two arguments and writes the finished
configuration to stdout.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from lbfleet.errors import RenderError
from lbfleet.models import ExecutionOutcome, Host

log = logging.getLogger(__name__)


class ConfigRenderer(Protocol):
    async def render(self, host: Host) -> bytes: ...


class CommandRenderer:
    def __init__(self, command: list[str], timeout: float = 60, logger: logging.Logger | None = None):
        if not command:
            raise ValueError("Render command must not be empty")
        self.command = list(command)
        self.timeout = timeout
        self.log = logger or log

    async def render(self, host: Host) -> bytes:
        cmd = [*self.command, str(host.index), host.address]
        self.log.debug("Rendering config for %s: %s", host.address, cmd)
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise RenderError(
                f"Could not run renderer {self.command[0]}: {exc}",
                ExecutionOutcome.failure(str(exc)),
            ) from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise RenderError(
                f"Renderer timed out for {host.address}",
                ExecutionOutcome.failure(f"timed out after {self.timeout}s", timed_out=True),
            )
        finally:
            if proc.returncode is None:
                try:
                    proc.kill()
                except ProcessLookupError:
                    pass
                await proc.wait()

        if proc.returncode != 0:
            outcome = ExecutionOutcome(succeeded=False, exit_status=proc.returncode, output=stderr)
            raise RenderError(f"Renderer failed for {host.address} ({outcome.describe()})", outcome)
        return stdout
