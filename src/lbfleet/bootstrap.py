from __future__ import annotations

import logging
from pathlib import Path

from lbfleet.errors import HostInitError, NoHostsSpecifiedError
from lbfleet.models import HostFailure, InitReport
from lbfleet.ssh import RemoteExecutor

log = logging.getLogger(__name__)


class HostInitializer:
    def __init__(
        self,
        executor: RemoteExecutor,
        bootstrap_dir: str | Path,
        remote_root: str = "/",
        logger: logging.Logger | None = None,
    ):
        self.executor = executor
        self.bootstrap_dir = Path(bootstrap_dir)
        self.remote_root = remote_root
        self.log = logger or log

    async def init(self, addresses: list[str]) -> InitReport:
        """Copy the bootstrap tree onto each new host; every host is attempted."""
        if not addresses:
            raise NoHostsSpecifiedError()

        report = InitReport()
        for address in addresses:
            self.log.info("Bootstrapping %s", address)
            outcome = await self.executor.sync_tree(self.bootstrap_dir, address, self.remote_root, delete=False)
            if outcome.succeeded:
                report.succeeded.append(address)
            else:
                failure = HostFailure(address, "bootstrap sync", outcome)
                self.log.error("Bootstrap of %s failed: %s", address, failure)
                report.failures.append(failure)

        if report.failures:
            raise HostInitError(report.failures, report)
        return report
