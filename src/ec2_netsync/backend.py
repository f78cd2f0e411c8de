"""Abstract interface to the OS network configuration."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from .config import AddressFamily


class NetworkBackend(ABC):
    """Operations the reconciler needs from the kernel.

    Mutating methods raise :class:`~ec2_netsync.exceptions.NetworkOperationError`
    when the kernel rejects a change; lookups on a missing interface raise
    :class:`~ec2_netsync.exceptions.InterfaceNotFound`.
    """

    @abstractmethod
    def hardware_address(self, interface: str) -> str:
        """Return the MAC address of ``interface`` in lower-case colon form."""

    @abstractmethod
    def list_addresses(self, interface: str, family: AddressFamily) -> List[str]:
        """Addresses this tool manages: IPv4 secondaries or IPv6 global scope."""

    @abstractmethod
    def add_address(
        self, interface: str, address: str, prefixlen: int, family: AddressFamily
    ) -> None:
        ...

    @abstractmethod
    def delete_address(
        self, interface: str, address: str, prefixlen: int, family: AddressFamily
    ) -> None:
        ...

    @abstractmethod
    def add_rule(self, address: str, table: int, family: AddressFamily) -> None:
        """Add ``from <address> lookup <table>``."""

    @abstractmethod
    def delete_rule(self, address: str, table: int, family: AddressFamily) -> None:
        ...

    @abstractmethod
    def list_rules(self, table: int, family: AddressFamily) -> List[str]:
        """Source addresses of the rules that look up ``table``."""

    @abstractmethod
    def has_default_route(self, table: int, family: AddressFamily) -> bool:
        ...

    @abstractmethod
    def default_gateway(self, interface: str, family: AddressFamily) -> Optional[str]:
        """Gateway of the main-table default route through ``interface``, if any."""

    @abstractmethod
    def add_default_route(
        self, interface: str, gateway: str, table: int, family: AddressFamily
    ) -> None:
        ...

    @abstractmethod
    def add_subnet_route(
        self, interface: str, cidr: str, source: str, table: int
    ) -> None:
        """Add a link-scope route for ``cidr`` with preferred source ``source``."""

    def close(self) -> None:  # pragma: no cover - nothing to release by default
        return None

    def __enter__(self) -> "NetworkBackend":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
