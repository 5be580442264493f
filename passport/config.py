"""
passport.config — YAML Configuration Loader
============================================

Reads ``config.yaml`` for soft, non-secret settings.  Secrets and
infrastructure (``DATABASE_URL``, SMTP credentials, ``FRONTEND_URL``) come
from the environment, loaded from ``.env`` by the entry points.

Usage::

    from passport.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.app_name)              # "Passport"
    print(cfg.reconcile_interval_hours)
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PassportConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    app_name: str

    # Catalog
    catalog_path: str

    # Notifications
    notifications_enabled: bool
    notification_from: str

    # Background work
    outbox_drain_seconds: float = 5.0
    reconcile_interval_hours: float = 24.0


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> PassportConfig:
    """Read *path* and return a :class:`PassportConfig` instance.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return PassportConfig(
        app_name=raw["app_name"],
        catalog_path=raw["catalog_path"],
        notifications_enabled=bool(raw["notifications_enabled"]),
        notification_from=raw["notification_from"],
        outbox_drain_seconds=float(raw.get("outbox_drain_seconds", 5.0)),
        reconcile_interval_hours=float(raw.get("reconcile_interval_hours", 24.0)),
    )
