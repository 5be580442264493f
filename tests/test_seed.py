"""
tests/test_seed.py — Catalog Seeder & Config Loader Tests
==========================================================
"""

from __future__ import annotations

import textwrap
from dataclasses import fields
from pathlib import Path

import pytest
import yaml
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from passport.config import PassportConfig, load_config
from passport.database.models import Badge, Level, ProgressionState
from passport.database.seed import load_catalog_file, seed_catalog
from passport.engine.catalog import CatalogStore
from passport.engine.criteria import LevelThreshold, PerEntityVotes


def _write(tmp_path, body: str, name: str = "catalog.yaml"):
    path = tmp_path / name
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


class TestSeedCatalog:
    def test_seeds_default_catalog(self, db_engine):
        inserted = seed_catalog(db_engine)

        assert inserted == {"levels": 4, "badges": 7}
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(Level)) == 4
            level_two = session.scalar(select(Level).where(Level.level_number == 2))
            assert level_two.gate_level == 1
            assert level_two.catalog_version == "2"

    def test_idempotent(self, db_engine):
        seed_catalog(db_engine)
        assert seed_catalog(db_engine) == {"levels": 0, "badges": 0}
        with Session(db_engine) as session:
            assert session.scalar(select(func.count()).select_from(Badge)) == 7

    def test_catalog_store_parses_criteria(self, db_engine):
        seed_catalog(db_engine)
        store = CatalogStore(db_engine)

        assert store.badge("💖 Super Like").criteria == (PerEntityVotes(count=10),)
        assert store.badge("🧭 Guía Experto").criteria == (LevelThreshold(level=3),)
        assert store.level(4).requirements[1].count == 50
        assert store.level(9) is None
        assert store.badge("nope") is None


class TestLoadCatalogFile:
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_catalog_file(tmp_path / "absent.yaml")

    def test_level_numbers_must_be_contiguous(self, tmp_path):
        path = _write(tmp_path, """
            levels:
              - {level_number: 1, name: A}
              - {level_number: 3, name: C}
        """)
        with pytest.raises(ValueError, match="contiguous"):
            load_catalog_file(path)

    def test_level_one_cannot_be_gated(self, tmp_path):
        path = _write(tmp_path, """
            levels:
              - {level_number: 1, name: A, gate_level: 1}
        """)
        with pytest.raises(ValueError, match="Level 1"):
            load_catalog_file(path)

    def test_bad_badge_criterion(self, tmp_path):
        path = _write(tmp_path, """
            levels:
              - {level_number: 1, name: A}
            badges:
              - name: Broken
                criteria:
                  - {kind: streak, days: 3}
        """)
        with pytest.raises(ValueError, match="Unknown criterion kind"):
            load_catalog_file(path)


class TestLoadConfig:
    def test_loads_values(self, tmp_path):
        path = _write(tmp_path, """
            app_name: Passport
            catalog_path: seeds/catalog.yaml
            notifications_enabled: true
            notification_from: "Passport <no-reply@example.com>"
            reconcile_interval_hours: 12
        """, name="config.yaml")

        cfg = load_config(path)

        assert cfg.app_name == "Passport"
        assert cfg.notifications_enabled is True
        assert cfg.reconcile_interval_hours == 12.0
        assert cfg.outbox_drain_seconds == 5.0

    def test_missing_file_has_hint(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="config.yaml.example"):
            load_config(tmp_path / "config.yaml")

    def test_missing_key(self, tmp_path):
        path = _write(tmp_path, "app_name: Passport\n", name="config.yaml")
        with pytest.raises(KeyError):
            load_config(path)

    def test_example_config_keys_are_all_read(self):
        example = Path(__file__).resolve().parents[1] / "config.yaml.example"
        raw = yaml.safe_load(example.read_text(encoding="utf-8"))

        assert set(raw) == {f.name for f in fields(PassportConfig)}
        load_config(example)


class TestSchema:
    def test_state_level_references_catalog(self):
        (fk,) = ProgressionState.__table__.c.level.foreign_keys
        assert fk.target_fullname == "levels.level_number"
