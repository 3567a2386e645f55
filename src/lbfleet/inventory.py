from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import yaml

from lbfleet.errors import ConfigurationError
from lbfleet.models import Host

log = logging.getLogger(__name__)


class FleetRegistry:
    """Ordered, immutable list of managed hosts.

    A host's index is its position in the inventory and never changes for
    the lifetime of the registry.
    """

    def __init__(self, hosts: list[Host] | tuple[Host, ...] = ()):
        seen: set[str] = set()
        for position, host in enumerate(hosts):
            if host.index != position:
                raise ValueError(f"Host {host.address} has index {host.index}, expected {position}")
            if host.address in seen:
                raise ValueError(f"Duplicate host address: {host.address}")
            seen.add(host.address)
        self._hosts = tuple(hosts)

    @classmethod
    def from_addresses(cls, addresses: list[str], active: set[str] | None = None) -> FleetRegistry:
        active = active or set()
        return cls([
            Host(index=i, address=address, active=address in active)
            for i, address in enumerate(addresses)
        ])

    def hosts(self) -> tuple[Host, ...]:
        return self._hosts

    def host_at(self, index: int) -> Host:
        if index < 0 or index >= len(self._hosts):
            raise IndexError(f"No host at index {index} (registry has {len(self._hosts)})")
        return self._hosts[index]

    def active_hosts(self) -> list[Host]:
        return [h for h in self._hosts if h.active]

    def __len__(self) -> int:
        return len(self._hosts)

    def __iter__(self) -> Iterator[Host]:
        return iter(self._hosts)

    def __repr__(self) -> str:
        return f"FleetRegistry({[h.address for h in self._hosts]!r})"


def load_registry(path: str | Path) -> FleetRegistry:
    """Load the host inventory from YAML.

    Each entry under ``hosts`` is either an address or a mapping with
    ``address`` and an optional ``active`` flag::

        hosts:
          - lb-a.example.net
          - address: lb-b.example.net
            active: true
    """
    path = Path(path).expanduser()
    if not path.exists():
        raise ConfigurationError(f"Inventory not found: {path}")

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigurationError(f"Cannot read {path}: {exc}") from exc

    entries = data.get("hosts") if isinstance(data, dict) else data
    if entries is None:
        entries = []
    if not isinstance(entries, list):
        raise ConfigurationError(f"{path}: 'hosts' must be a list")

    hosts = []
    for i, entry in enumerate(entries):
        if isinstance(entry, dict):
            address, active = entry.get("address"), bool(entry.get("active", False))
        else:
            address, active = entry, False
        address = str(address).strip() if isinstance(address, (str, int)) else ""
        if not address:
            raise ConfigurationError(f"{path}: host entry {i} has no address")
        hosts.append(Host(index=i, address=address, active=active))

    try:
        registry = FleetRegistry(hosts)
    except ValueError as exc:
        raise ConfigurationError(f"{path}: {exc}") from exc

    log.info("Loaded %d host(s) from %s", len(registry), path)
    return registry
