"""pyroute2 implementation of :class:`~ec2_netsync.backend.NetworkBackend`."""

from __future__ import annotations

import logging
from typing import List, Optional

import pyroute2
from pyroute2.netlink.exceptions import NetlinkError

from .backend import NetworkBackend
from .config import AddressFamily
from .exceptions import InterfaceNotFound, NetworkOperationError

LOG = logging.getLogger(__name__)

# From /usr/include/linux/if_addr.h and rtnetlink.h
IFA_F_SECONDARY = 0x01
RT_SCOPE_UNIVERSE = 0
RT_SCOPE_LINK = 253
RT_TABLE_MAIN = 254
RTPROT_KERNEL = 2


class PyRoute2Backend(NetworkBackend):
    """Drive addresses, routes and rules over rtnetlink."""

    def __init__(self, ipr: Optional[pyroute2.IPRoute] = None) -> None:
        self._ipr = ipr or pyroute2.IPRoute()

    def close(self) -> None:
        self._ipr.close()

    def _index(self, interface: str) -> int:
        indices = self._call(f"look up {interface}", self._ipr.link_lookup, ifname=interface)
        if not indices:
            raise InterfaceNotFound(f"interface '{interface}' not found")
        return indices[0]

    def hardware_address(self, interface: str) -> str:
        index = self._index(interface)
        link = self._call(f"read link {interface}", self._ipr.get_links, index)[0]
        mac = link.get_attr("IFLA_ADDRESS")
        if not mac:
            raise InterfaceNotFound(f"interface '{interface}' has no hardware address")
        return str(mac).lower()

    def list_addresses(self, interface: str, family: AddressFamily) -> List[str]:
        index = self._index(interface)
        addresses = []
        messages = self._call(
            f"list {family.label} addresses on {interface}",
            self._ipr.get_addr,
            index=index,
            family=family.value,
        )
        for msg in messages:
            if family is AddressFamily.IPV4:
                if not msg["flags"] & IFA_F_SECONDARY:
                    continue
            elif msg["scope"] != RT_SCOPE_UNIVERSE:
                continue
            address = msg.get_attr("IFA_ADDRESS")
            if address:
                addresses.append(str(address))
        return addresses

    def add_address(
        self, interface: str, address: str, prefixlen: int, family: AddressFamily
    ) -> None:
        index = self._index(interface)
        self._call(
            f"add address {address}/{prefixlen} on {interface}",
            self._ipr.addr,
            "add",
            index=index,
            address=address,
            prefixlen=prefixlen,
            family=family.value,
        )

    def delete_address(
        self, interface: str, address: str, prefixlen: int, family: AddressFamily
    ) -> None:
        index = self._index(interface)
        self._call(
            f"delete address {address}/{prefixlen} on {interface}",
            self._ipr.addr,
            "del",
            index=index,
            address=address,
            prefixlen=prefixlen,
            family=family.value,
        )

    def add_rule(self, address: str, table: int, family: AddressFamily) -> None:
        self._call(
            f"add rule from {address} lookup {table}",
            self._ipr.rule,
            "add",
            family=family.value,
            src=address,
            src_len=family.host_prefixlen,
            table=table,
        )

    def delete_rule(self, address: str, table: int, family: AddressFamily) -> None:
        self._call(
            f"delete rule from {address} lookup {table}",
            self._ipr.rule,
            "del",
            family=family.value,
            src=address,
            src_len=family.host_prefixlen,
            table=table,
        )

    def list_rules(self, table: int, family: AddressFamily) -> List[str]:
        rules = self._call(
            f"list {family.label} rules", self._ipr.get_rules, family=family.value
        )
        sources = []
        for rule in rules:
            # Tables above 255 only appear in FRA_TABLE; the header holds RT_TABLE_COMPAT.
            if (rule.get_attr("FRA_TABLE") or rule["table"]) != table:
                continue
            source = rule.get_attr("FRA_SRC")
            if source:
                sources.append(str(source))
        return sources

    def has_default_route(self, table: int, family: AddressFamily) -> bool:
        routes = self._call(
            f"list {family.label} default routes in table {table}",
            self._ipr.get_routes,
            family=family.value,
            table=table,
            dst_len=0,
        )
        return bool(routes)

    def default_gateway(self, interface: str, family: AddressFamily) -> Optional[str]:
        index = self._index(interface)
        routes = self._call(
            f"list {family.label} default routes on {interface}",
            self._ipr.get_routes,
            family=family.value,
            table=RT_TABLE_MAIN,
            oif=index,
            dst_len=0,
        )
        for route in routes:
            gateway = route.get_attr("RTA_GATEWAY")
            if gateway:
                return str(gateway)
        return None

    def add_default_route(
        self, interface: str, gateway: str, table: int, family: AddressFamily
    ) -> None:
        index = self._index(interface)
        self._call(
            f"add default via {gateway} dev {interface} table {table}",
            self._ipr.route,
            "add",
            family=family.value,
            dst_len=0,
            gateway=gateway,
            oif=index,
            table=table,
        )

    def add_subnet_route(
        self, interface: str, cidr: str, source: str, table: int
    ) -> None:
        index = self._index(interface)
        self._call(
            f"add route {cidr} dev {interface} src {source} table {table}",
            self._ipr.route,
            "add",
            dst=cidr,
            oif=index,
            prefsrc=source,
            scope=RT_SCOPE_LINK,
            proto=RTPROT_KERNEL,
            table=table,
        )

    @staticmethod
    def _call(description: str, func, *args, **kwargs):
        LOG.debug("netlink: %s", description)
        try:
            return func(*args, **kwargs)
        except NetlinkError as exc:
            raise NetworkOperationError(f"{description}: {exc}") from exc
