"""Entry point invoked by udhcpc after a lease is bound or renewed."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Mapping, Optional

from ec2_netsync.exceptions import InvalidHookInput, ReconcileError
from ec2_netsync.metadata import MetadataClient
from ec2_netsync.netlink import PyRoute2Backend
from ec2_netsync.reconciler import InterfaceReconciler

from .config import DEFAULT_CONFIG_PATH, HookConfig, load_config
from .events import POST_BOUND, POST_RENEW, HookEvent
from .locking import interface_lock
from .registry import HookRegistry

LOG = logging.getLogger(__name__)

HOOK_ENV = "EC2_NETSYNC_HOOK"
DEBUG_ENV = "EC2_NETSYNC_DEBUG"


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    )


def _debug_requested(environ: Mapping[str, str]) -> bool:
    return environ.get(DEBUG_ENV, "").strip().lower() in ("1", "true", "yes", "on")


def _reconcile(config: HookConfig, event: HookEvent) -> None:
    with interface_lock(config.lock_dir, event.interface):
        with PyRoute2Backend() as backend:
            metadata = MetadataClient(config.metadata)
            try:
                reconciler = InterfaceReconciler(backend, metadata, config.reconciler)
                reconciler.reconcile(event.interface, event.mask_bits)
            finally:
                metadata.close()


def build_registry(config: HookConfig) -> HookRegistry:
    registry = HookRegistry()
    for kind in (POST_BOUND, POST_RENEW):
        registry.register(kind, lambda event: _reconcile(config, event))
    return registry


def main(
    argv: Optional[list[str]] = None, environ: Optional[Mapping[str, str]] = None
) -> int:
    environ = os.environ if environ is None else environ

    parser = argparse.ArgumentParser(
        description="Synchronise EC2-assigned addresses onto a udhcpc interface"
    )
    parser.add_argument(
        "hook",
        nargs="?",
        default=environ.get(HOOK_ENV, ""),
        help=f"Hook kind ({POST_BOUND} or {POST_RENEW})",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to the hook configuration file",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)
    _setup_logging(args.verbose or _debug_requested(environ))

    try:
        config = load_config(args.config)
    except (OSError, ValueError) as exc:
        LOG.error("invalid configuration %s: %s", args.config, exc)
        return 1

    registry = build_registry(config)

    # Reject bad triggers before touching the network stack.
    try:
        registry.check(args.hook)
        event = HookEvent.from_environ(args.hook, environ)
    except InvalidHookInput as exc:
        LOG.error("%s", exc)
        return 1

    try:
        registry.handle(event)
    except ReconcileError as exc:
        LOG.error("reconciliation of %s failed: %s", event.interface, exc)
        return 1

    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
