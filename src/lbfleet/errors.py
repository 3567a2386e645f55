from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lbfleet.models import ExecutionOutcome, HostFailure, InitReport, PushReport


class LBFleetError(Exception):
    pass


class ConfigurationError(LBFleetError):
    """Settings or inventory missing or malformed."""


class RepositoryError(LBFleetError):
    """The state of the local configuration repository could not be determined."""


class RenderError(LBFleetError):
    def __init__(self, message: str, outcome: ExecutionOutcome):
        super().__init__(message)
        self.outcome = outcome


class PushError(LBFleetError):
    pass


class DirtySourceError(PushError):
    def __init__(self, repository: str):
        super().__init__(f"Refusing to push: {repository} has uncommitted changes")
        self.repository = repository


class HostPushError(PushError):
    def __init__(self, failures: list[HostFailure], report: PushReport):
        summary = "; ".join(str(f) for f in failures)
        super().__init__(f"Push failed for {len(failures)} host(s): {summary}")
        self.failures = failures
        self.report = report


class InitError(LBFleetError):
    pass


class NoHostsSpecifiedError(InitError):
    def __init__(self):
        super().__init__("No hosts specified")


class HostInitError(InitError):
    def __init__(self, failures: list[HostFailure], report: InitReport):
        summary = "; ".join(str(f) for f in failures)
        super().__init__(f"Bootstrap failed for {len(failures)} host(s): {summary}")
        self.failures = failures
        self.report = report
