from ipaddress import ip_address
from typing import Dict, List, Optional, Set, Tuple

import pytest

from ec2_netsync.backend import NetworkBackend
from ec2_netsync.config import AddressFamily, ReconcilerConfig
from ec2_netsync.exceptions import InterfaceNotFound, MetadataError, NetworkOperationError
from ec2_netsync.reconciler import InterfaceReconciler

ETH0_MAC = "0a:1b:2c:3d:4e:00"
ETH1_MAC = "0a:1b:2c:3d:4e:01"


class FakeBackend(NetworkBackend):
    """In-memory stand-in for the kernel network configuration."""

    def __init__(self) -> None:
        self.macs: Dict[str, str] = {"eth0": ETH0_MAC, "eth1": ETH1_MAC}
        self.addresses: Dict[Tuple[str, AddressFamily], List[str]] = {}
        self.rules: Set[Tuple[str, int]] = set()
        self.default_routes: Dict[Tuple[int, AddressFamily], str] = {}
        self.subnet_routes: Set[Tuple[str, str, int]] = set()
        self.ra_gateways: Dict[str, str] = {}
        self.failing: Set[Tuple[str, str]] = set()
        self.failing_reads: Set[str] = set()
        self.calls: List[tuple] = []
        self.closed = False

    def _maybe_fail(self, op: str, key: str) -> None:
        if (op, key) in self.failing:
            raise NetworkOperationError(f"{op} {key}: Operation not permitted")

    def hardware_address(self, interface: str) -> str:
        if interface not in self.macs:
            raise InterfaceNotFound(f"interface '{interface}' not found")
        return self.macs[interface]

    def _maybe_fail_read(self, op: str) -> None:
        if op in self.failing_reads:
            raise NetworkOperationError(f"{op}: No buffer space available")

    def list_addresses(self, interface, family):
        self._maybe_fail_read("list_addresses")
        return list(self.addresses.get((interface, family), []))

    def add_address(self, interface, address, prefixlen, family):
        self.calls.append(("add_address", interface, address, prefixlen))
        self._maybe_fail("add_address", address)
        self.addresses.setdefault((interface, family), []).append(address)

    def delete_address(self, interface, address, prefixlen, family):
        self.calls.append(("delete_address", interface, address, prefixlen))
        self._maybe_fail("delete_address", address)
        self.addresses[(interface, family)].remove(address)

    def add_rule(self, address, table, family):
        self.calls.append(("add_rule", address, table))
        self._maybe_fail("add_rule", address)
        self.rules.add((address, table))

    def delete_rule(self, address, table, family):
        self.calls.append(("delete_rule", address, table))
        self._maybe_fail("delete_rule", address)
        self.rules.discard((address, table))

    def list_rules(self, table, family):
        self._maybe_fail_read("list_rules")
        version = 4 if family is AddressFamily.IPV4 else 6
        return [
            address
            for address, rule_table in sorted(self.rules)
            if rule_table == table and ip_address(address).version == version
        ]

    def has_default_route(self, table, family):
        return (table, family) in self.default_routes

    def default_gateway(self, interface, family):
        self.calls.append(("default_gateway", interface))
        self._maybe_fail_read("default_gateway")
        return self.ra_gateways.get(interface)

    def add_default_route(self, interface, gateway, table, family):
        self.calls.append(("add_default_route", interface, gateway, table))
        self._maybe_fail("add_default_route", gateway)
        self.default_routes[(table, family)] = gateway

    def add_subnet_route(self, interface, cidr, source, table):
        self.calls.append(("add_subnet_route", interface, cidr, source, table))
        self._maybe_fail("add_subnet_route", cidr)
        self.subnet_routes.add((cidr, source, table))

    def close(self) -> None:
        self.closed = True

    def mutations(self) -> List[tuple]:
        return [c for c in self.calls if c[0] != "default_gateway"]


class FakeMetadata:
    """Scripted metadata answers keyed by MAC address.

    Values may be lists (returned on every call) or ``MetadataError``
    instances queued in ``errors`` to be raised before the real answer.
    """

    def __init__(self) -> None:
        self.ipv4: Dict[str, List[str]] = {}
        self.ipv6: Dict[str, List[str]] = {}
        self.cidrs: Dict[str, str] = {}
        self.errors: List[MetadataError] = []
        self.queries: List[Tuple[str, str]] = []
        self.closed = False

    def _record(self, key: str, mac: str) -> None:
        self.queries.append((key, mac))
        if self.errors:
            raise self.errors.pop(0)

    def local_ipv4s(self, mac: str) -> List[str]:
        self._record("local-ipv4s", mac)
        return list(self.ipv4.get(mac, []))

    def ipv6s(self, mac: str) -> List[str]:
        self._record("ipv6s", mac)
        return list(self.ipv6.get(mac, []))

    def subnet_ipv4_cidr(self, mac: str) -> Optional[str]:
        self._record("subnet-ipv4-cidr-block", mac)
        return self.cidrs.get(mac)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def metadata() -> FakeMetadata:
    return FakeMetadata()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def reconciler_config() -> ReconcilerConfig:
    return ReconcilerConfig(
        ipv4_attempts=3,
        ipv6_attempts=4,
        metadata_interval=0.5,
        gateway_attempts=2,
        gateway_interval=0.25,
    )


@pytest.fixture
def reconciler(backend, metadata, reconciler_config, sleeps) -> InterfaceReconciler:
    return InterfaceReconciler(
        backend, metadata, reconciler_config, sleep=sleeps.append
    )
