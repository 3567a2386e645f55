from __future__ import annotations

import asyncio
import logging

from lbfleet.inventory import FleetRegistry
from lbfleet.models import Host, ServiceState, StatusRow
from lbfleet.ssh import RemoteExecutor

log = logging.getLogger(__name__)


class StatusCollector:
    def __init__(
        self,
        executor: RemoteExecutor,
        frontend_service: str = "nginx",
        failover_service: str = "keepalived",
        logger: logging.Logger | None = None,
    ):
        self.executor = executor
        self.frontend_service = frontend_service
        self.failover_service = failover_service
        self.log = logger or log

    async def _service_state(self, host: Host, service: str) -> ServiceState:
        outcome = await self.executor.run_privileged(
            host.address, "systemctl", "is-active", "--quiet", service,
        )
        state = ServiceState.from_outcome(outcome)
        if state is ServiceState.FAILED:
            self.log.info("Service %s on %s: %s", service, host.address, outcome.describe())
        return state

    async def _host_row(self, host: Host) -> StatusRow:
        frontend, failover = await asyncio.gather(
            self._service_state(host, self.frontend_service),
            self._service_state(host, self.failover_service),
        )
        return StatusRow(
            index=host.index,
            address=host.address,
            frontend=frontend,
            failover=failover,
        )

    async def collect(self, registry: FleetRegistry) -> list[StatusRow]:
        """Query both services on every host concurrently.

        Rows come back in registry order whatever order the queries finish in.
        """
        hosts = registry.hosts()
        if not hosts:
            return []
        self.log.info("Collecting status for %d host(s)", len(hosts))
        rows = await asyncio.gather(*[self._host_row(h) for h in hosts])
        return sorted(rows, key=lambda row: row.index)


def format_rows(rows: list[StatusRow]) -> str:
    return "\n".join(
        f"{row.index}\t{row.address}\t{row.frontend.value}\t{row.failover.value}"
        for row in rows
    )
