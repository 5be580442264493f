"""
passport.database.seed — Catalog Seeder
========================================

Seeds the ``levels`` and ``badges`` tables from ``seeds/catalog.yaml``.

Idempotent — only inserts levels/badges that don't already exist (matched
by ``level_number`` / ``name``).  Existing rows are never overwritten;
the catalog is read-only to the progression engine at runtime.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from sqlalchemy import Engine, select

from passport.database.engine import UnitOfWork
from passport.database.models import Badge, Level
from passport.engine.criteria import parse_criteria, parse_criterion

logger = logging.getLogger(__name__)

# Resolve the seeds directory relative to the project root
DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent.parent.parent / "seeds" / "catalog.yaml"


def load_catalog_file(path: str | Path | None = None) -> dict[str, Any]:
    """Read and validate the catalog YAML.

    Raises
    ------
    FileNotFoundError
        If the file doesn't exist.
    ValueError
        If a criterion is malformed or the level numbers are not a
        contiguous sequence starting at 1.
    """
    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH
    if not catalog_path.exists():
        raise FileNotFoundError(f"Catalog file not found: {catalog_path.resolve()}")

    with open(catalog_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    levels = raw.get("levels") or []
    badges = raw.get("badges") or []

    numbers = sorted(int(lvl["level_number"]) for lvl in levels)
    if numbers != list(range(1, len(numbers) + 1)):
        raise ValueError(f"Level numbers must be contiguous from 1, got {numbers}")
    for lvl in levels:
        if int(lvl["level_number"]) == 1 and lvl.get("gate_level") is not None:
            raise ValueError("Level 1 cannot be gated on another level")
        for req in lvl.get("requirements") or []:
            parse_criterion({"kind": "action_count", **req})
    for badge in badges:
        parse_criteria(badge.get("criteria"))

    return {
        "version": str(raw.get("version", "1")),
        "levels": levels,
        "badges": badges,
    }


def seed_catalog(engine: Engine, path: str | Path | None = None) -> dict[str, int]:
    """Insert catalog levels and badges that don't yet exist.

    Returns ``{"levels": N, "badges": M}`` — the number of rows inserted.
    """
    catalog = load_catalog_file(path)
    version = catalog["version"]
    inserted_levels = 0
    inserted_badges = 0

    with UnitOfWork(engine) as session:
        existing_levels = set(session.scalars(select(Level.level_number)).all())
        for item in catalog["levels"]:
            if int(item["level_number"]) in existing_levels:
                continue
            session.add(Level(
                level_number=int(item["level_number"]),
                name=item["name"],
                min_points=int(item.get("min_points", 0)),
                description=item.get("description"),
                rewards=item.get("rewards") or {},
                instructions=list(item.get("instructions") or []),
                gate_level=item.get("gate_level"),
                requirements=list(item.get("requirements") or []),
                catalog_version=version,
            ))
            inserted_levels += 1

        existing_badges = set(session.scalars(select(Badge.name)).all())
        for order, item in enumerate(catalog["badges"]):
            if item["name"] in existing_badges:
                continue
            session.add(Badge(
                name=item["name"],
                description=item.get("description"),
                criteria=list(item.get("criteria") or []),
                icon_url=item.get("icon_url"),
                instructions=list(item.get("instructions") or []),
                sort_order=order,
                catalog_version=version,
            ))
            inserted_badges += 1

    if inserted_levels or inserted_badges:
        logger.info(
            "Seeded catalog v%s: %d levels, %d badges.",
            version, inserted_levels, inserted_badges,
        )
    else:
        logger.info("Catalog v%s already seeded — skipping.", version)
    return {"levels": inserted_levels, "badges": inserted_badges}
