"""Routing table identifier derivation."""

from __future__ import annotations

import re
from typing import Dict

from .config import InterfaceIdentity
from .exceptions import InvalidInterfaceName

_ORDINAL_RE = re.compile(r"(\d+)$")


class RoutingTables:
    """Map interface names to stable policy routing table numbers.

    The primary interface keeps using the OS main table.  Every other
    interface gets ``offset + ordinal`` where ``ordinal`` is the numeric
    suffix of its name, so ``eth1`` maps to table 1001 with the default
    offset.  The result only depends on the name, which keeps the number
    stable across hook invocations without persisting anything.

    Parameters
    ----------
    primary_interface:
        Name of the instance's primary interface.
    offset:
        Added to the interface ordinal.  The default of 1000 keeps clear of
        the reserved ``local``/``main``/``default`` tables (253-255) and of
        the low numbers administrators tend to hand-assign.
    """

    def __init__(self, primary_interface: str = "eth0", offset: int = 1000) -> None:
        self._primary = primary_interface
        self._offset = offset
        self._cache: Dict[str, InterfaceIdentity] = {}

    def identify(self, interface: str) -> InterfaceIdentity:
        if interface in self._cache:
            return self._cache[interface]

        match = _ORDINAL_RE.search(interface)
        ordinal = int(match.group(1)) if match else None

        if interface == self._primary:
            identity = InterfaceIdentity(name=interface, ordinal=ordinal, table=None)
        elif ordinal is None:
            raise InvalidInterfaceName(
                f"cannot derive a routing table for '{interface}': no numeric suffix"
            )
        else:
            identity = InterfaceIdentity(
                name=interface, ordinal=ordinal, table=self._offset + ordinal
            )

        self._cache[interface] = identity
        return identity
