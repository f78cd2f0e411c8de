"""Interface address reconciler.

One pass converges the addresses configured on a local interface with the
addresses EC2 has assigned to it, first for IPv4 and then for IPv6.  Each
family phase runs fetch-desired -> fetch-actual -> converge -> provision:

* the desired set comes from the metadata service, polled with a bounded
  budget because it can lag behind interface hotplug by several seconds;
* only the minimal set of removals and additions is applied, removals first;
* non-primary interfaces get a policy rule per address and, once, a routing
  table holding a default route (and for IPv4 the subnet route).

Individual kernel operations that fail are logged and recorded; the pass
keeps going so a single bad address does not block the rest.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

from .backend import NetworkBackend
from .config import (
    AddressFamily,
    FamilyOutcome,
    InterfaceIdentity,
    ReconcileReport,
    ReconcilerConfig,
)
from .exceptions import (
    InvalidHookInput,
    MetadataUnavailable,
    NetworkOperationError,
    ReconcileError,
)
from .metadata import MetadataClient
from .tables import RoutingTables
from .utils import ipv4_gateway, normalize_addresses, poll

LOG = logging.getLogger(__name__)


class InterfaceReconciler:
    """Synchronise EC2-assigned addresses onto a network interface."""

    def __init__(
        self,
        backend: NetworkBackend,
        metadata: MetadataClient,
        config: Optional[ReconcilerConfig] = None,
        tables: Optional[RoutingTables] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._backend = backend
        self._metadata = metadata
        self._config = config or ReconcilerConfig()
        self._tables = tables or RoutingTables(
            primary_interface=self._config.primary_interface,
            offset=self._config.table_offset,
        )
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    def reconcile(self, interface: str, subnet_mask_bits: int) -> ReconcileReport:
        """Run one convergence pass over ``interface``.

        ``subnet_mask_bits`` is the prefix length used for IPv4 secondaries;
        IPv6 addresses are always configured as /128.  Raises
        :class:`~ec2_netsync.exceptions.ReconcileError` subclasses on fatal
        conditions; a fatal IPv4 metadata failure ends the pass before the
        IPv6 phase starts.
        """

        if not interface:
            raise InvalidHookInput("interface name is required")
        if not 0 <= subnet_mask_bits <= 32:
            raise InvalidHookInput(f"invalid IPv4 prefix length {subnet_mask_bits}")

        identity = self._tables.identify(interface)
        try:
            mac = self._backend.hardware_address(interface)
        except NetworkOperationError as exc:
            raise ReconcileError(f"cannot read hardware address of {interface}: {exc}") from exc
        LOG.info(
            "Reconciling %s (mac=%s table=%s)",
            interface,
            mac,
            identity.table if identity.table is not None else "main",
        )

        report = ReconcileReport(identity=identity)
        report.families[AddressFamily.IPV4] = self._reconcile_ipv4(
            identity, mac, subnet_mask_bits
        )
        report.families[AddressFamily.IPV6] = self._reconcile_ipv6(identity, mac)

        LOG.info(
            "Reconciled %s: %d change(s), %d failure(s)",
            interface,
            report.mutations,
            len(report.failures),
        )
        return report

    # ------------------------------------------------------------------
    # Per-family phases
    # ------------------------------------------------------------------
    def _reconcile_ipv4(
        self, identity: InterfaceIdentity, mac: str, mask_bits: int
    ) -> FamilyOutcome:
        family = AddressFamily.IPV4
        assigned = poll(
            lambda: normalize_addresses(self._metadata.local_ipv4s(mac)),
            self._config.ipv4_attempts,
            self._config.metadata_interval,
            what=f"{identity.name} local-ipv4s",
            sleep=self._sleep,
        )
        if not assigned:
            raise MetadataUnavailable(
                f"no IPv4 addresses for {identity.name} ({mac}) after "
                f"{self._config.ipv4_attempts} attempts"
            )

        # The first address is the primary one; udhcpc already owns it.
        primary, desired = assigned[0], assigned[1:]
        outcome = FamilyOutcome(family=family, desired=list(desired))
        actual = self._actual(identity, family, outcome)
        if actual is None:
            return outcome
        outcome.actual = [a for a in actual if a != primary]
        self._converge(identity, family, mask_bits, outcome)

        if self._needs_table(identity, family, outcome):
            self._provision_ipv4_table(identity, mac, primary, outcome)
        return outcome

    def _reconcile_ipv6(self, identity: InterfaceIdentity, mac: str) -> FamilyOutcome:
        family = AddressFamily.IPV6
        desired = poll(
            lambda: normalize_addresses(self._metadata.ipv6s(mac)),
            self._config.ipv6_attempts,
            self._config.metadata_interval,
            what=f"{identity.name} ipv6s",
            sleep=self._sleep,
        )
        if not desired:
            LOG.info("No IPv6 addresses assigned to %s", identity.name)
            desired = []

        outcome = FamilyOutcome(family=family, desired=list(desired))
        actual = self._actual(identity, family, outcome)
        if actual is None:
            return outcome
        outcome.actual = actual
        self._converge(identity, family, family.host_prefixlen, outcome)

        if self._needs_table(identity, family, outcome):
            self._provision_ipv6_table(identity, outcome)
        return outcome

    def _actual(
        self, identity: InterfaceIdentity, family: AddressFamily, outcome: FamilyOutcome
    ) -> Optional[List[str]]:
        try:
            addresses = self._backend.list_addresses(identity.name, family)
        except NetworkOperationError as exc:
            LOG.error(
                "Cannot read %s addresses on %s, skipping: %s", family.label, identity.name, exc
            )
            outcome.failures.append(str(exc))
            return None
        return normalize_addresses(addresses)

    # ------------------------------------------------------------------
    # Convergence
    # ------------------------------------------------------------------
    def _converge(
        self,
        identity: InterfaceIdentity,
        family: AddressFamily,
        prefixlen: int,
        outcome: FamilyOutcome,
    ) -> None:
        desired = set(outcome.desired)
        actual = set(outcome.actual)
        stale = [a for a in outcome.actual if a not in desired]
        missing = [a for a in outcome.desired if a not in actual]

        if not stale and not missing:
            LOG.debug("%s %s addresses already converged", identity.name, family.label)

        # Removals go first so a moved address never exists twice.
        for address in stale:
            self._remove(identity, family, address, prefixlen, outcome)
        for address in missing:
            self._add(identity, family, address, prefixlen, outcome)

        if not identity.is_primary:
            self._sync_rules(identity, family, outcome)

    def _add(
        self,
        identity: InterfaceIdentity,
        family: AddressFamily,
        address: str,
        prefixlen: int,
        outcome: FamilyOutcome,
    ) -> None:
        try:
            self._backend.add_address(identity.name, address, prefixlen, family)
        except NetworkOperationError as exc:
            LOG.error("Failed to add %s/%d to %s: %s", address, prefixlen, identity.name, exc)
            outcome.failures.append(str(exc))
            return
        LOG.info("Added %s/%d to %s", address, prefixlen, identity.name)
        outcome.added.append(address)

        if not identity.is_primary:
            self._add_rule(identity, family, address, outcome)

    def _remove(
        self,
        identity: InterfaceIdentity,
        family: AddressFamily,
        address: str,
        prefixlen: int,
        outcome: FamilyOutcome,
    ) -> None:
        try:
            self._backend.delete_address(identity.name, address, prefixlen, family)
        except NetworkOperationError as exc:
            LOG.error(
                "Failed to remove %s/%d from %s: %s", address, prefixlen, identity.name, exc
            )
            outcome.failures.append(str(exc))
            return
        LOG.info("Removed %s/%d from %s", address, prefixlen, identity.name)
        outcome.removed.append(address)

        if not identity.is_primary:
            self._delete_rule(identity, family, address, outcome)

    def _sync_rules(
        self, identity: InterfaceIdentity, family: AddressFamily, outcome: FamilyOutcome
    ) -> None:
        """Repair rules left behind by rule operations that failed in earlier passes.

        Addresses changed in this pass already had their rule handled alongside
        them; here we add rules for addresses that were kept but lack one and
        drop rules for addresses that are neither desired nor configured.
        """

        try:
            existing = normalize_addresses(self._backend.list_rules(identity.table, family))
        except NetworkOperationError as exc:
            LOG.error("Cannot list rules for table %s: %s", identity.table, exc)
            outcome.failures.append(str(exc))
            return

        kept = set(outcome.actual) & set(outcome.desired)
        for address in outcome.desired:
            if address in kept and address not in existing:
                LOG.warning("Rule for %s lookup %s is missing", address, identity.table)
                self._add_rule(identity, family, address, outcome)

        known = set(outcome.actual) | set(outcome.desired)
        for address in existing:
            if address not in known:
                LOG.warning("Rule for %s lookup %s is orphaned", address, identity.table)
                self._delete_rule(identity, family, address, outcome)

    def _add_rule(
        self,
        identity: InterfaceIdentity,
        family: AddressFamily,
        address: str,
        outcome: FamilyOutcome,
    ) -> None:
        try:
            self._backend.add_rule(address, identity.table, family)
        except NetworkOperationError as exc:
            LOG.error("Failed to add rule from %s lookup %s: %s", address, identity.table, exc)
            outcome.failures.append(str(exc))
            return
        LOG.info("Added rule from %s lookup %s", address, identity.table)
        outcome.rules_added.append(address)

    def _delete_rule(
        self,
        identity: InterfaceIdentity,
        family: AddressFamily,
        address: str,
        outcome: FamilyOutcome,
    ) -> None:
        try:
            self._backend.delete_rule(address, identity.table, family)
        except NetworkOperationError as exc:
            LOG.error(
                "Failed to remove rule from %s lookup %s: %s", address, identity.table, exc
            )
            outcome.failures.append(str(exc))
            return
        LOG.info("Removed rule from %s lookup %s", address, identity.table)
        outcome.rules_removed.append(address)

    # ------------------------------------------------------------------
    # Routing table provisioning
    # ------------------------------------------------------------------
    def _needs_table(
        self, identity: InterfaceIdentity, family: AddressFamily, outcome: FamilyOutcome
    ) -> bool:
        if identity.is_primary or not outcome.desired:
            return False
        try:
            exists = self._backend.has_default_route(identity.table, family)
        except NetworkOperationError as exc:
            LOG.error("Cannot inspect table %s: %s", identity.table, exc)
            outcome.failures.append(str(exc))
            return False
        if exists:
            LOG.debug("Table %s already has a %s default route", identity.table, family.label)
        return not exists

    def _provision_ipv4_table(
        self,
        identity: InterfaceIdentity,
        mac: str,
        primary: str,
        outcome: FamilyOutcome,
    ) -> None:
        cidr = poll(
            lambda: self._metadata.subnet_ipv4_cidr(mac),
            self._config.ipv4_attempts,
            self._config.metadata_interval,
            what=f"{identity.name} subnet-ipv4-cidr-block",
            sleep=self._sleep,
        )
        if not cidr:
            LOG.warning(
                "No IPv4 subnet CIDR for %s; not provisioning table %s",
                identity.name,
                identity.table,
            )
            return

        try:
            gateway = ipv4_gateway(cidr)
        except ValueError as exc:
            LOG.warning("Unusable subnet CIDR %r for %s: %s", cidr, identity.name, exc)
            outcome.failures.append(str(exc))
            return

        self._add_route(
            outcome,
            identity.table,
            f"default via {gateway}",
            self._backend.add_default_route,
            identity.name,
            gateway,
            identity.table,
            AddressFamily.IPV4,
        )
        self._add_route(
            outcome,
            identity.table,
            f"{cidr} src {primary}",
            self._backend.add_subnet_route,
            identity.name,
            cidr,
            primary,
            identity.table,
        )

    def _provision_ipv6_table(
        self, identity: InterfaceIdentity, outcome: FamilyOutcome
    ) -> None:
        family = AddressFamily.IPV6
        gateway = poll(
            lambda: self._router_gateway(identity, family),
            self._config.gateway_attempts,
            self._config.gateway_interval,
            what=f"{identity.name} IPv6 router advertisement",
            sleep=self._sleep,
        )
        if not gateway:
            LOG.warning(
                "No IPv6 default router seen on %s; not provisioning table %s",
                identity.name,
                identity.table,
            )
            return

        self._add_route(
            outcome,
            identity.table,
            f"default via {gateway}",
            self._backend.add_default_route,
            identity.name,
            gateway,
            identity.table,
            family,
        )

    def _router_gateway(
        self, identity: InterfaceIdentity, family: AddressFamily
    ) -> Optional[str]:
        try:
            return self._backend.default_gateway(identity.name, family)
        except NetworkOperationError as exc:
            LOG.debug("Reading %s default route on %s failed: %s", family.label, identity.name, exc)
            return None

    def _add_route(
        self,
        outcome: FamilyOutcome,
        table: int,
        description: str,
        func: Callable[..., None],
        *args: object,
    ) -> None:
        try:
            func(*args)
        except NetworkOperationError as exc:
            LOG.error("Failed to add route %s table %s: %s", description, table, exc)
            outcome.failures.append(str(exc))
            return
        LOG.info("Added route %s table %s", description, table)
        outcome.routes_added.append(description)

