from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class Host:
    index: int
    address: str
    active: bool = False


@dataclass(frozen=True)
class ExecutionOutcome:
    """Result of a single remote (or local helper) operation.

    exit_status is -1 when the process never produced one (connection or
    transfer error, timeout).
    """

    succeeded: bool
    exit_status: int
    output: bytes = b""
    timed_out: bool = False

    @classmethod
    def failure(cls, message: str, timed_out: bool = False) -> ExecutionOutcome:
        return cls(
            succeeded=False,
            exit_status=-1,
            output=message.encode(),
            timed_out=timed_out,
        )

    def describe(self) -> str:
        if self.timed_out:
            return "timed out"
        text = self.output.decode(errors="replace").strip()
        if self.exit_status == -1:
            return text or "remote operation failed"
        if text:
            return f"exit {self.exit_status}: {text.splitlines()[-1]}"
        return f"exit {self.exit_status}"


class ServiceState(Enum):
    ACTIVE = "Active"
    FAILED = "Failed"

    @classmethod
    def from_outcome(cls, outcome: ExecutionOutcome) -> ServiceState:
        return cls.ACTIVE if outcome.succeeded else cls.FAILED


@dataclass(frozen=True)
class StatusRow:
    index: int
    address: str
    frontend: ServiceState
    failover: ServiceState


@dataclass(frozen=True)
class HostFailure:
    address: str
    step: str
    outcome: ExecutionOutcome

    def __str__(self) -> str:
        return f"{self.address}: {self.step} failed ({self.outcome.describe()})"


@dataclass
class PushReport:
    pushed: list[Host] = field(default_factory=list)
    skipped: list[Host] = field(default_factory=list)
    failures: list[HostFailure] = field(default_factory=list)


@dataclass
class InitReport:
    succeeded: list[str] = field(default_factory=list)
    failures: list[HostFailure] = field(default_factory=list)
