from __future__ import annotations

import ipaddress
import logging
import time
from typing import Callable, Iterable, List, Optional, TypeVar

from .exceptions import MetadataError

LOG = logging.getLogger(__name__)

T = TypeVar("T")


def normalize_address(value: str) -> str:
    if not value:
        raise ValueError("Address value cannot be empty")
    return str(ipaddress.ip_address(value.strip()))


def normalize_addresses(values: Iterable[str]) -> List[str]:
    """Normalize and de-duplicate ``values`` preserving their order.

    Entries that do not parse as an IP address are logged and dropped.
    """

    addresses = []
    for value in values:
        if not value.strip():
            continue
        try:
            addresses.append(normalize_address(value))
        except ValueError:
            LOG.warning("ignoring malformed address %r", value)
    return list(dict.fromkeys(addresses))


def ipv4_gateway(cidr: str) -> str:
    """Return the VPC router address for ``cidr``: its network address + 1."""

    network = ipaddress.ip_network(cidr.strip(), strict=False)
    if network.version != 4:
        raise ValueError(f"'{cidr}' is not an IPv4 subnet")
    return str(network.network_address + 1)


def poll(
    fetch: Callable[[], Optional[T]],
    attempts: int,
    interval: float,
    *,
    what: str,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[T]:
    """Call ``fetch`` until it returns something truthy.

    Returns the first truthy result, or ``None`` once ``attempts`` calls have
    come back empty.  :class:`MetadataError` raised by ``fetch`` counts as an
    empty attempt.  There is no sleep after the final attempt.
    """

    for attempt in range(1, attempts + 1):
        try:
            result = fetch()
        except MetadataError as exc:
            LOG.debug("%s: attempt %d/%d failed: %s", what, attempt, attempts, exc)
            result = None
        if result:
            return result
        LOG.debug("%s: nothing yet (attempt %d/%d)", what, attempt, attempts)
        if attempt < attempts:
            sleep(interval)
    return None
