"""
Game Hunt — Gamification Service for a Mobile Game Discovery Community
=======================================================================
Turns community activity (posts, likes, comments, shares) into an
append-only XP ledger, derives levels from it, awards badges against
fixed thresholds and keeps members informed through notifications.

Package layout::

    gamehunt/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # XP table + leveling formula
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Badge catalog seeder
    ├── engine/
    │   └── badges.py      # Badge catalog + pure rule registry
    ├── services/
    │   ├── xp_service.py            # Ledger writes + aggregator
    │   ├── badge_service.py         # Badge evaluation + queries
    │   ├── notification_service.py  # Best-effort notifications
    │   ├── community_service.py     # Posts, likes, comments, shares
    │   ├── reconciliation_service.py # Drift detection + repair
    │   └── admin_service.py         # Audit-logged admin mutations
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # JWT auth + DB dependencies
        ├── rate_limit.py  # Sliding-window mutation throttle
        └── routes/        # XP, badges, notifications, community, admin
"""

__version__ = "0.1.0"
