"""
passport.worker — Entry point for ``python -m passport.worker``
================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Seed the level/badge catalog (idempotent) and warm the CatalogStore.
5. Start the notification outbox drain.
6. Run the stats reconciliation loop until interrupted.

Run with::

    python -m passport.worker
"""

from __future__ import annotations

import asyncio
import logging

from dotenv import load_dotenv

from passport.config import PassportConfig, load_config
from passport.database.engine import create_db_engine, init_db, run_db
from passport.database.seed import seed_catalog
from passport.engine.catalog import CatalogStore
from passport.services.notifications import LoggingSink, NotificationOutbox, build_sink_from_env
from passport.services.progression_service import ProgressionEngine
from passport.services.reconciliation_service import recalculate_all_users

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("passport")


async def reconcile_once(progression: ProgressionEngine) -> dict | None:
    """Run one reconciliation pass off the event loop.  Never raises."""
    try:
        result = await run_db(recalculate_all_users, progression.engine, progression)
    except Exception:
        logger.exception("Reconciliation task failed")
        return None
    logger.info(
        "Reconciliation task complete: processed=%d errors=%d corrected=%d",
        result["processed"], result["errors"], result["corrected"],
    )
    return result


async def reconciliation_loop(progression: ProgressionEngine, interval_hours: float) -> None:
    while True:
        await reconcile_once(progression)
        await asyncio.sleep(interval_hours * 3600)


async def run(cfg: PassportConfig) -> None:
    engine = create_db_engine()
    init_db(engine)
    seed_catalog(engine, cfg.catalog_path)

    catalog = CatalogStore(engine)
    catalog.load_all()

    sink = build_sink_from_env(cfg.notification_from) if cfg.notifications_enabled else LoggingSink()
    outbox = NotificationOutbox(sink)
    progression = ProgressionEngine(engine, catalog, outbox=outbox)

    outbox.start(asyncio.get_running_loop(), interval=cfg.outbox_drain_seconds)
    try:
        await reconciliation_loop(progression, cfg.reconcile_interval_hours)
    finally:
        outbox.stop()
        await outbox.drain_once()


def main() -> None:
    """Bootstrap and run the Passport worker."""
    load_dotenv()

    cfg = load_config()
    logger.info("Config loaded — %s", cfg.app_name)

    logger.info("Starting Passport worker…")
    try:
        asyncio.run(run(cfg))
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
