"""
crewscore.__main__ — Entry point for ``python -m crewscore``
============================================================

Maintenance jobs the platform's scheduler runs against the engine:

    python -m crewscore seed                       # create tables + badge catalogue
    python -m crewscore health-recalc GROUP_ID     # recompute a group's health score
    python -m crewscore crew-recalc GROUP_ID       # persist fresh crew scores
    python -m crewscore streak-breaks EVENT_ID GROUP_ID
    python -m crewscore monthly-reset              # zero this-month spirit points

Wiring:
1. Load .env (``DATABASE_URL``).
2. Load config.yaml (soft settings), falling back to defaults if absent.
3. Create the SQLAlchemy engine and ensure tables exist.
4. Run the command, then drain background side effects before exiting.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from dotenv import load_dotenv

from crewscore.config import DEFAULT_CONFIG, load_config
from crewscore.database.engine import create_db_engine, init_db
from crewscore.services.context import ServiceContext
from crewscore.services.crew_score_service import recalculate_group_crew_scores
from crewscore.services.health_service import calculate_group_health_score
from crewscore.services.points_service import reset_monthly_spirit_points
from crewscore.services.streak_service import check_streak_breaks

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("crewscore")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="crewscore", description=__doc__.split("\n")[1])
    parser.add_argument("--config", default="config.yaml", help="path to config.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("seed", help="create tables and seed the default badge catalogue")

    health = sub.add_parser("health-recalc", help="recompute a group's health score")
    health.add_argument("group_id")

    crew = sub.add_parser("crew-recalc", help="persist fresh crew scores for a group")
    crew.add_argument("group_id")

    breaks = sub.add_parser("streak-breaks", help="reset streaks for no-shows at an event")
    breaks.add_argument("event_id")
    breaks.add_argument("group_id")

    sub.add_parser("monthly-reset", help="zero every member's this-month spirit points")
    return parser


async def run_command(ctx: ServiceContext, args: argparse.Namespace) -> None:
    if args.command == "health-recalc":
        result = await calculate_group_health_score(ctx, args.group_id)
        logger.info("Health score: %d (delta %s)", result.score, result.delta)
    elif args.command == "crew-recalc":
        await recalculate_group_crew_scores(ctx, args.group_id)
    elif args.command == "streak-breaks":
        await check_streak_breaks(ctx, args.event_id, args.group_id)
    elif args.command == "monthly-reset":
        await reset_monthly_spirit_points(ctx)
    await ctx.background.drain()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # 1. Environment variables (secrets).
    load_dotenv()

    # 2. Soft configuration.
    try:
        cfg = load_config(args.config)
    except FileNotFoundError:
        logger.warning("No %s found — using built-in defaults.", args.config)
        cfg = DEFAULT_CONFIG
    logger.info("Config loaded — App: %s", cfg.app_name)

    # 3. Database.
    try:
        engine = create_db_engine()
    except RuntimeError as exc:
        logger.critical("%s", exc)
        return 1
    init_db(engine)

    if args.command == "seed":
        return 0

    # 4. Command.
    ctx = ServiceContext(engine=engine, cfg=cfg)
    asyncio.run(run_command(ctx, args))
    return 0


if __name__ == "__main__":
    sys.exit(main())
