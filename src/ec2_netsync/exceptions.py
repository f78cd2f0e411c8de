"""Error types raised while reconciling an interface."""

from __future__ import annotations


class ReconcileError(Exception):
    """Base class for conditions that abort a reconciliation pass."""


class InvalidHookInput(ReconcileError, ValueError):
    """Trigger inputs are missing or malformed."""


class UnsupportedHook(InvalidHookInput):
    """The hook kind is not one we reconcile on."""

    def __init__(self, kind: str) -> None:
        super().__init__(f"unsupported hook kind '{kind}'")
        self.kind = kind


class InvalidInterfaceName(ReconcileError, ValueError):
    """A non-primary interface name carries no numeric ordinal."""


class InterfaceNotFound(ReconcileError):
    """The named interface does not exist on this host."""


class MetadataUnavailable(ReconcileError):
    """The metadata service never produced the data a pass depends on."""


class MetadataError(Exception):
    """A single metadata request failed; callers may retry."""


class NetworkOperationError(Exception):
    """A single kernel address, route or rule operation failed."""
