"""
Passport — Progression Engine for a Social Travel Platform
===========================================================
Turns user activity (reviews, votes received, uploads, places added…) into
points, levels and badges.  Every action is written to an append-only
ledger; the per-user points and level are a cache of that ledger that a
daily job reconciles.

Package layout::

    passport/
    ├── config.py              # YAML → typed Python config
    ├── worker.py              # Notification drain + daily reconciliation
    ├── database/
    │   ├── engine.py          # SQLAlchemy engine, UnitOfWork, async helper
    │   ├── models.py          # ORM models (6 tables)
    │   └── seed.py            # Level/badge catalog seeder
    ├── engine/
    │   ├── actions.py         # Action types + points table
    │   ├── criteria.py        # Tagged badge criteria
    │   ├── levels.py          # Gated level qualification
    │   ├── catalog.py         # In-memory catalog store
    │   └── errors.py          # Error taxonomy
    ├── services/
    │   ├── ledger.py                  # Append-only action ledger
    │   ├── progression_service.py     # Award / stats / recalculation
    │   ├── milestones.py              # Milestone projection
    │   ├── reconciliation_service.py  # Daily recalculation job
    │   └── notifications.py           # Outbox + email sink
    └── api/
        ├── main.py            # FastAPI app
        ├── deps.py            # Shared dependencies
        └── routes/            # Progression + cron endpoints
"""

__version__ = "0.1.0"
