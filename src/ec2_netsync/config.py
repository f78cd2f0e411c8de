"""Configuration and result data structures for the reconciler.

These light-weight dataclasses describe the knobs a reconciliation pass runs
with and the outcome it reports.  The hook runtime builds them from its YAML
file; tests construct them directly with small retry budgets.
"""

from __future__ import annotations

import socket
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class AddressFamily(Enum):
    """Address families handled by a pass, in the order they are processed."""

    IPV4 = socket.AF_INET
    IPV6 = socket.AF_INET6

    @property
    def host_prefixlen(self) -> int:
        return 32 if self is AddressFamily.IPV4 else 128

    @property
    def label(self) -> str:
        return "ipv4" if self is AddressFamily.IPV4 else "ipv6"


@dataclass(frozen=True)
class InterfaceIdentity:
    """A local interface and the routing table its addresses are bound to.

    Attributes
    ----------
    name:
        Kernel interface name, e.g. ``eth1``.
    ordinal:
        Trailing numeric suffix of ``name`` (``None`` when the primary
        interface name carries none).
    table:
        Policy routing table for the interface's addresses.  ``None`` means
        the OS main table and that no custom table or rules are managed.
    """

    name: str
    ordinal: Optional[int]
    table: Optional[int]

    @property
    def is_primary(self) -> bool:
        return self.table is None


@dataclass(frozen=True)
class ReconcilerConfig:
    """Retry budgets and table numbering used by the reconciler."""

    primary_interface: str = "eth0"
    table_offset: int = 1000
    ipv4_attempts: int = 60
    ipv6_attempts: int = 60
    metadata_interval: float = 0.5
    gateway_attempts: int = 20
    gateway_interval: float = 0.5


@dataclass(frozen=True)
class MetadataConfig:
    """Where and how to reach the instance metadata service (IMDSv2)."""

    endpoint: str = "http://169.254.169.254"
    token_ttl: int = 60
    timeout: float = 2.0


@dataclass
class FamilyOutcome:
    """What a single address family phase observed and changed."""

    family: AddressFamily
    desired: List[str] = field(default_factory=list)
    actual: List[str] = field(default_factory=list)
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    rules_added: List[str] = field(default_factory=list)
    rules_removed: List[str] = field(default_factory=list)
    routes_added: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)

    @property
    def table_provisioned(self) -> bool:
        return bool(self.routes_added)

    @property
    def mutations(self) -> int:
        return (
            len(self.added)
            + len(self.removed)
            + len(self.rules_added)
            + len(self.rules_removed)
            + len(self.routes_added)
        )


@dataclass
class ReconcileReport:
    """Result of one reconciliation pass over an interface."""

    identity: InterfaceIdentity
    families: Dict[AddressFamily, FamilyOutcome] = field(default_factory=dict)

    @property
    def mutations(self) -> int:
        return sum(outcome.mutations for outcome in self.families.values())

    @property
    def failures(self) -> List[str]:
        return [f for outcome in self.families.values() for f in outcome.failures]
