"""
SpudVerse — Tap-to-Earn Economy Backend for a Telegram Mini App
================================================================
Users tap a virtual potato to farm SPUD, spend energy that regenerates in
real time, complete missions, invite friends, and buy upgrades and shop
items that raise their active and passive earning rate.

Package layout::

    spudverse/
    ├── config.py          # YAML → typed Python config
    ├── clock.py           # Millisecond time sources (system + frozen)
    ├── errors.py          # Domain error taxonomy → HTTP status
    ├── client.py          # httpx client with batched tap flushing
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   ├── seed.py        # Catalog seeder (missions, achievements, shop)
    │   └── store.py       # LedgerStore: atomic unit of work + retries
    ├── engine/
    │   ├── energy.py      # Tick-based energy regeneration
    │   ├── reward.py      # Tap reward math, combo meter, tap batcher
    │   ├── progression.py # Level ladder + derived stats
    │   ├── achievements.py # Achievement predicate registry
    │   ├── missions.py    # Forward-only mission state machine
    │   └── shop.py        # Upgrade/shop pricing + passive income
    ├── services/
    │   ├── account_service.py     # Accounts, referrals, leaderboard
    │   ├── tap_service.py         # Tap batches + energy status
    │   ├── progression_service.py # Level-ups and post-earning hooks
    │   ├── achievement_service.py # Unlock + listing
    │   ├── mission_service.py     # Verify / complete / claim
    │   ├── shop_service.py        # Upgrades, shop, passive sync
    │   └── verifier.py            # External social verification
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Store, clock, verifier and identity dependencies
        ├── security.py    # Init data signatures + session tokens
        ├── auth.py        # Telegram init data → JWT
        ├── rate_limit.py  # Per-user mutation rate limiting
        └── routes/        # Game, missions, shop endpoints
"""

__version__ = "0.1.0"
