"""YAML configuration loader for the udhcpc hook."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ec2_netsync.config import MetadataConfig, ReconcilerConfig

DEFAULT_CONFIG_PATH = Path("/etc/ec2-netsync/config.yaml")
DEFAULT_LOCK_DIR = Path("/run/ec2-netsync")

_ACCEPTED = {int: (int,), float: (int, float), str: (str,)}


@dataclass
class HookConfig:
    metadata: MetadataConfig = field(default_factory=MetadataConfig)
    reconciler: ReconcilerConfig = field(default_factory=ReconcilerConfig)
    lock_dir: Path = DEFAULT_LOCK_DIR


def _parse_section(section: Optional[Dict[str, Any]], cls, name: str):
    if section is None:
        return cls()
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' section must be a mapping")

    known = {f.name: f for f in fields(cls)}
    unknown = set(section) - set(known)
    if unknown:
        raise ValueError(f"unknown '{name}' option(s): {', '.join(sorted(unknown))}")

    values = {}
    for key, raw in section.items():
        expected = type(known[key].default)
        # bool is an int subclass; YAML true/false is never a valid number here.
        if isinstance(raw, bool) or not isinstance(raw, _ACCEPTED[expected]):
            raise ValueError(
                f"invalid value for {name}.{key}: expected {expected.__name__}, got {raw!r}"
            )
        values[key] = expected(raw)
    return cls(**values)


def _validate(reconciler: ReconcilerConfig) -> None:
    for key in ("ipv4_attempts", "ipv6_attempts", "gateway_attempts"):
        if getattr(reconciler, key) < 1:
            raise ValueError(f"reconciler.{key} must be at least 1")
    for key in ("metadata_interval", "gateway_interval"):
        if getattr(reconciler, key) < 0:
            raise ValueError(f"reconciler.{key} cannot be negative")
    if reconciler.table_offset < 1:
        raise ValueError("reconciler.table_offset must be positive")


def load_config(path: Path) -> HookConfig:
    """Load ``path``; a missing file yields the built-in defaults."""

    if not path.exists():
        return HookConfig()

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise ValueError(f"malformed YAML: {exc}") from exc
    if data is None:
        return HookConfig()
    if not isinstance(data, dict):
        raise ValueError("Hook configuration must be a mapping")

    metadata = _parse_section(data.get("metadata"), MetadataConfig, "metadata")
    reconciler = _parse_section(data.get("reconciler"), ReconcilerConfig, "reconciler")
    _validate(reconciler)

    lock_dir = data.get("lock_dir", str(DEFAULT_LOCK_DIR))
    if not isinstance(lock_dir, str) or not lock_dir:
        raise ValueError(f"invalid value for lock_dir: {lock_dir!r}")

    return HookConfig(metadata=metadata, reconciler=reconciler, lock_dir=Path(lock_dir))
