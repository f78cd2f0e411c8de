"""Trigger events delivered by udhcpc."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from ec2_netsync.exceptions import InvalidHookInput

POST_BOUND = "post-bound"
POST_RENEW = "post-renew"


@dataclass(frozen=True)
class HookEvent:
    """A lease event for one interface.

    udhcpc exports the lease as environment variables; ``interface`` and
    ``mask`` (the IPv4 prefix length) are the only ones we need.
    """

    kind: str
    interface: str
    mask_bits: int

    @classmethod
    def from_environ(cls, kind: str, environ: Mapping[str, str]) -> "HookEvent":
        if not kind:
            raise InvalidHookInput("hook kind is required")

        interface = environ.get("interface", "").strip()
        if not interface:
            raise InvalidHookInput("'interface' is not set")

        raw_mask = environ.get("mask", "").strip()
        if not raw_mask:
            raise InvalidHookInput("'mask' is not set")
        try:
            mask_bits = int(raw_mask)
        except ValueError:
            raise InvalidHookInput(f"'mask' must be a prefix length, got '{raw_mask}'")
        if not 0 <= mask_bits <= 32:
            raise InvalidHookInput(f"'mask' out of range: {mask_bits}")

        return cls(kind=kind, interface=interface, mask_bits=mask_bits)
