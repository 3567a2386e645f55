from __future__ import annotations

import asyncio
import logging
import shlex
from pathlib import Path
from typing import Protocol

import asyncssh

from lbfleet.config import Settings
from lbfleet.models import ExecutionOutcome

log = logging.getLogger(__name__)


MAX_CONCURRENT_SESSIONS = 8


class RemoteExecutor(Protocol):
    """Remote operations used by every fleet command.

    None of these raise on remote failure; callers branch on
    ``ExecutionOutcome.succeeded``.
    """

    async def run_privileged(
        self, address: str, command: str, *args: str, input: bytes | None = None,
    ) -> ExecutionOutcome: ...

    async def copy_file(self, local_path: str | Path, address: str, remote_path: str) -> ExecutionOutcome: ...

    async def sync_tree(
        self, local_dir: str | Path, address: str, remote_dir: str, *, delete: bool = False,
    ) -> ExecutionOutcome: ...


def privileged_command(command: str, *args: str) -> str:
    return shlex.join(["sudo", "-n", "--", command, *args])


def build_rsync_command(
    local_dir: str | Path,
    address: str,
    remote_dir: str,
    *,
    user: str,
    port: int = 22,
    ssh_key: Path | None = None,
    connect_timeout: float = 10,
    delete: bool = False,
) -> list[str]:
    ssh_parts = [
        "ssh", "-p", str(port),
        "-o", "BatchMode=yes",
        "-o", f"ConnectTimeout={int(connect_timeout)}",
        "-o", "StrictHostKeyChecking=no",
        "-o", "UserKnownHostsFile=/dev/null",
    ]
    if ssh_key:
        ssh_parts += ["-i", str(ssh_key)]

    cmd = ["rsync", "-az", "--rsync-path=sudo -n rsync", "-e", shlex.join(ssh_parts)]
    if delete:
        cmd.append("--delete")
    # Trailing slash: sync the directory's contents, not the directory itself
    source = str(local_dir).rstrip("/") + "/"
    cmd += [source, f"{user}@{address}:{remote_dir}"]
    return cmd


def _check_address(address: str) -> None:
    if not address or not address.strip():
        raise ValueError("A host address is required")


async def _reap(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass
        await proc.wait()


class SSHExecutor:
    """RemoteExecutor over asyncssh, with rsync for directory trees.

    Connections are opened lazily, cached per host and closed by ``close()``
    or on leaving ``async with``.
    """

    def __init__(
        self,
        remote_user: str,
        port: int = 22,
        ssh_key: Path | None = None,
        connect_timeout: float = 10,
        command_timeout: float = 120,
        logger: logging.Logger | None = None,
    ):
        self.remote_user = remote_user
        self.port = port
        self.ssh_key = ssh_key
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout
        self.log = logger or log
        self._connections: dict[str, asyncssh.SSHClientConnection] = {}
        self._connect_locks: dict[str, asyncio.Lock] = {}
        self._semaphores: dict[str, asyncio.Semaphore] = {}

    @classmethod
    def from_settings(cls, settings: Settings, logger: logging.Logger | None = None) -> SSHExecutor:
        return cls(
            remote_user=settings.remote_user,
            port=settings.ssh_port,
            ssh_key=settings.ssh_key,
            connect_timeout=settings.connect_timeout,
            command_timeout=settings.command_timeout,
            logger=logger,
        )

    async def __aenter__(self) -> SSHExecutor:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _semaphore(self, address: str) -> asyncio.Semaphore:
        if address not in self._semaphores:
            self._semaphores[address] = asyncio.Semaphore(MAX_CONCURRENT_SESSIONS)
        return self._semaphores[address]

    def _connect_options(self) -> dict:
        options = {
            "port": self.port,
            "username": self.remote_user,
            "known_hosts": None,
        }
        if self.ssh_key:
            options["client_keys"] = [str(self.ssh_key)]
        return options

    async def _connection(self, address: str) -> asyncssh.SSHClientConnection:
        lock = self._connect_locks.setdefault(address, asyncio.Lock())
        async with lock:
            conn = self._connections.get(address)
            if conn is not None:
                return conn

            self.log.info("Connecting to %s@%s", self.remote_user, address)
            ssh_config = Path.home() / ".ssh" / "config"
            config_paths = [str(ssh_config)] if ssh_config.exists() else []
            try:
                conn = await asyncio.wait_for(
                    asyncssh.connect(address, config=config_paths, **self._connect_options()),
                    timeout=self.connect_timeout,
                )
            except asyncio.TimeoutError:
                raise
            except (asyncssh.Error, OSError, ValueError):
                if not config_paths:
                    raise
                self.log.warning("SSH config parse failed for %s, retrying without config", address, exc_info=True)
                conn = await asyncio.wait_for(
                    asyncssh.connect(address, **self._connect_options()),
                    timeout=self.connect_timeout,
                )
            self._connections[address] = conn
            self.log.info("Connected to %s", address)
            return conn

    def _drop_connection(self, address: str) -> None:
        # A failed connection is forgotten so the next call reconnects
        conn = self._connections.pop(address, None)
        if conn is not None:
            self.log.info("Dropping connection to %s", address)
            conn.close()

    async def run_privileged(
        self, address: str, command: str, *args: str, input: bytes | None = None,
    ) -> ExecutionOutcome:
        _check_address(address)
        cmdline = privileged_command(command, *args)

        async def _run() -> asyncssh.SSHCompletedProcess:
            conn = await self._connection(address)
            async with self._semaphore(address):
                return await conn.run(cmdline, check=False, input=input, encoding=None)

        self.log.debug("Running on %s: %s", address, cmdline)
        try:
            result = await asyncio.wait_for(_run(), timeout=self.command_timeout)
        except asyncio.TimeoutError:
            self.log.error("Command timed out on %s after %ss: %s", address, self.command_timeout, cmdline)
            return ExecutionOutcome.failure(f"timed out after {self.command_timeout}s", timed_out=True)
        except (asyncssh.Error, OSError) as exc:
            self.log.error("Command failed on %s (%s): %s", address, cmdline, exc)
            self._drop_connection(address)
            return ExecutionOutcome.failure(str(exc))

        exit_status = result.exit_status if result.exit_status is not None else -1
        output = (result.stdout or b"") + (result.stderr or b"")
        if result.stderr:
            self.log.debug("Command stderr on %s (%s): %s", address, cmdline, result.stderr.strip())
        self.log.debug("Command on %s finished (exit %d): %s", address, exit_status, cmdline)
        return ExecutionOutcome(succeeded=exit_status == 0, exit_status=exit_status, output=output)

    async def copy_file(self, local_path: str | Path, address: str, remote_path: str) -> ExecutionOutcome:
        _check_address(address)
        local_path = Path(local_path)
        if not local_path.is_file():
            raise FileNotFoundError(f"No such file: {local_path}")

        async def _copy() -> None:
            conn = await self._connection(address)
            async with self._semaphore(address):
                await asyncssh.scp(str(local_path), (conn, remote_path))

        self.log.info("Copying %s to %s:%s", local_path, address, remote_path)
        try:
            await asyncio.wait_for(_copy(), timeout=self.command_timeout)
        except asyncio.TimeoutError:
            self.log.error("Copy to %s timed out: %s", address, remote_path)
            return ExecutionOutcome.failure(f"timed out after {self.command_timeout}s", timed_out=True)
        except (asyncssh.Error, OSError) as exc:
            self.log.error("Copy to %s:%s failed: %s", address, remote_path, exc)
            self._drop_connection(address)
            return ExecutionOutcome.failure(str(exc))
        return ExecutionOutcome(succeeded=True, exit_status=0)

    async def sync_tree(
        self, local_dir: str | Path, address: str, remote_dir: str, *, delete: bool = False,
    ) -> ExecutionOutcome:
        _check_address(address)
        local_dir = Path(local_dir)
        if not local_dir.is_dir():
            raise FileNotFoundError(f"No such directory: {local_dir}")

        cmd = build_rsync_command(
            local_dir, address, remote_dir,
            user=self.remote_user,
            port=self.port,
            ssh_key=self.ssh_key,
            connect_timeout=self.connect_timeout,
            delete=delete,
        )
        self.log.info("Syncing %s to %s:%s%s", local_dir, address, remote_dir, " (mirror)" if delete else "")
        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as exc:
            self.log.error("Could not start rsync: %s", exc)
            return ExecutionOutcome.failure(str(exc))

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.command_timeout)
        except asyncio.TimeoutError:
            self.log.error("rsync to %s timed out after %ss", address, self.command_timeout)
            return ExecutionOutcome.failure(f"timed out after {self.command_timeout}s", timed_out=True)
        finally:
            # Also reached on cancellation: never leave rsync writing to the host
            await _reap(proc)

        if proc.returncode != 0:
            self.log.warning("rsync to %s:%s exited %d", address, remote_dir, proc.returncode)
        return ExecutionOutcome(
            succeeded=proc.returncode == 0,
            exit_status=proc.returncode,
            output=stdout or b"",
        )

    async def close(self) -> None:
        self.log.info("Closing %d SSH connection(s)", len(self._connections))
        for conn in self._connections.values():
            conn.close()
        self._connections.clear()
