"""
crewscore.database.engine — Engine, Sessions & the Thread Bridge
=================================================================

Scoring and ledger code is plain synchronous SQLAlchemy.  The public
service functions are coroutines, so each one packages its queries into a
sync function and awaits it through :func:`run_db`; reads that feed the
same result are awaited together with :func:`asyncio.gather`.

PostgreSQL is the production backend.  SQLite URLs are accepted for local
runs of ``python -m crewscore``.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine, make_url
from sqlalchemy.orm import Session

from crewscore.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

# Worker threads from run_db share the pool, plus a few concurrent requests.
POSTGRES_POOL = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_pre_ping": True,
    "pool_timeout": 10,
    "pool_recycle": 3600,
}


# ---------------------------------------------------------------------------
# Engine creation
# ---------------------------------------------------------------------------
def create_db_engine(url: str | None = None) -> Engine:
    """Engine for *url*, or for ``DATABASE_URL`` when no URL is given.

    Raises
    ------
    RuntimeError
        If neither is available.
    """
    url = url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example → .env and point it at the crewscore database."
        )

    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        # Sessions are opened on run_db worker threads, not the creating one.
        engine = create_engine(parsed, connect_args={"check_same_thread": False})
    else:
        engine = create_engine(parsed, **POSTGRES_POOL)

    logger.info(
        "Database engine created → %s (%s)",
        parsed.get_backend_name(), parsed.database or "?",
    )
    return engine


def init_db(engine: Engine) -> int:
    """Create missing tables and seed the badge catalogue.

    Alembic owns the production schema; this covers fresh dev databases and
    the test suite.  Returns the number of badges inserted.
    """
    Base.metadata.create_all(engine)
    logger.info("Database tables verified / created.")

    from crewscore.database.seed import seed_default_badges

    return seed_default_badges(engine)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Unit of work: commit when the block exits cleanly, roll back otherwise."""
    session = Session(engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a synchronous database function run on a worker thread."""
    return await asyncio.to_thread(func, *args, **kwargs)
