from __future__ import annotations

import logging
from pathlib import Path

from lbfleet.config import Settings
from lbfleet.errors import DirtySourceError, HostPushError, RenderError
from lbfleet.inventory import FleetRegistry
from lbfleet.models import Host, HostFailure, PushReport
from lbfleet.render import ConfigRenderer
from lbfleet.repository import RepositoryGuard
from lbfleet.ssh import RemoteExecutor

log = logging.getLogger(__name__)


class ConfigPusher:
    """Push frontend config, TLS material and failover config to every host.

    Hosts are handled one at a time in registry order. Hosts marked active
    are skipped unless ``allow_active`` is set. By default the first failing
    host stops the run; ``keep_going`` attempts every host and reports all
    failures at the end. Hosts updated before a failure stay updated.
    """

    def __init__(
        self,
        executor: RemoteExecutor,
        guard: RepositoryGuard,
        renderer: ConfigRenderer,
        settings: Settings,
        allow_active: bool = False,
        keep_going: bool = False,
        logger: logging.Logger | None = None,
    ):
        self.executor = executor
        self.guard = guard
        self.renderer = renderer
        self.settings = settings
        self.allow_active = allow_active
        self.keep_going = keep_going
        self.log = logger or log

    async def _push_host(self, host: Host) -> HostFailure | None:
        s = self.settings
        trees: list[tuple[str, Path, str]] = [
            ("frontend config sync", s.frontend_dir, s.frontend_remote_dir),
            ("TLS sync", s.tls_dir, s.tls_remote_dir),
        ]
        for step, local_dir, remote_dir in trees:
            outcome = await self.executor.sync_tree(local_dir, host.address, remote_dir, delete=True)
            if not outcome.succeeded:
                return HostFailure(host.address, step, outcome)

        try:
            rendered = await self.renderer.render(host)
        except RenderError as exc:
            return HostFailure(host.address, "render", exc.outcome)

        outcome = await self.executor.run_privileged(
            host.address, "dd", f"of={s.failover_config_path}", "status=none", input=rendered,
        )
        if not outcome.succeeded:
            return HostFailure(host.address, "failover config write", outcome)
        return None

    async def push(self, registry: FleetRegistry) -> PushReport:
        if await self.guard.is_dirty():
            raise DirtySourceError(str(self.guard.root))

        report = PushReport()
        for host in registry:
            if host.active and not self.allow_active:
                self.log.warning("Skipping %s (host %d): marked active", host.address, host.index)
                report.skipped.append(host)
                continue

            self.log.info("Pushing to %s (host %d)", host.address, host.index)
            failure = await self._push_host(host)
            if failure is None:
                self.log.info("Pushed to %s", host.address)
                report.pushed.append(host)
                continue

            self.log.error("Push to %s failed: %s", host.address, failure)
            report.failures.append(failure)
            if not self.keep_going:
                break

        if report.failures:
            raise HostPushError(report.failures, report)
        return report
