"""udhcpc hook runtime for ec2_netsync."""

from .config import HookConfig, load_config  # noqa: F401

__all__ = [
    "HookConfig",
    "load_config",
]
