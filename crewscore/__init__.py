"""
crewscore — Member Gamification & Group Health Engine
======================================================
Turns raw event, attendance and engagement records into spirit points,
streaks, badges, a composite Crew Score with tiers, a monthly attendance
board, a group health score and hall-of-fame records.

Package layout::

    crewscore/
    ├── __main__.py        # `python -m crewscore` maintenance jobs
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Presentation constants + numeric helpers
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Default badge catalogue seeder
    ├── engine/
    │   ├── periods.py     # Week/month windows, tenure, UTC helpers
    │   ├── points.py      # Spirit point actions + weekly caps
    │   ├── streaks.py     # Streak transitions + celebration thresholds
    │   ├── badges.py      # Typed badge criteria + evaluation pass
    │   ├── crew_score.py  # Percentile pillars + composite score
    │   ├── tiers.py       # Tier brackets + themes
    │   ├── board.py       # Monthly board ranking
    │   ├── health.py      # Group health signals
    │   └── records.py     # Hall-of-fame record pickers
    └── services/
        ├── context.py            # ServiceContext passed to every operation
        ├── background.py         # Fire-and-forget task registry
        ├── notifications.py      # Notifier / ChatPoster protocols + defaults
        ├── points_service.py     # Spirit point ledger writes
        ├── streak_service.py     # Check-in streaks + streak breaks
        ├── badge_service.py      # Badge awards + celebrations
        ├── crew_score_service.py # Crew Score reads + group recalculation
        ├── board_service.py      # Monthly board payload
        ├── health_service.py     # Health score upsert + admin alerts
        ├── hall_of_fame_service.py
        └── my_stats_service.py   # Member dashboard composition
"""

__version__ = "0.1.0"
