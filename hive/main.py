#!/usr/bin/env python3
"""
main.py — Hive dashboard engine entry point.

Runs the synchronization & simulation engine either behind the FastAPI
dashboard API or headless (timers only, summaries logged).

Usage:
    python main.py --serve [--host 0.0.0.0] [--port 8001]
    python main.py [--headless-seconds 120] [--email you@x --password ... [--sign-up]]

Environment:
    See hive_settings.py for the full list (SUPABASE_URL, SUPABASE_KEY, ...).
"""

import argparse
import asyncio
import sys
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from loguru import logger

from dashboard_engine import DashboardEngine, build_engine
from dashboard_server import create_app
from hive_models import AuthError
from hive_settings import HiveSettings

load_dotenv()


def setup_logging(log_level: str = "INFO") -> None:
    logger.remove()
    logger.add(
        sys.stdout,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
        level=log_level,
        colorize=True,
    )
    logger.add(
        "logs/hive.log",
        rotation="10 MB",
        retention="7 days",
        level="DEBUG",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}",
    )


async def run_headless(
    engine: DashboardEngine,
    seconds: Optional[float],
    email: Optional[str],
    password: Optional[str],
    sign_up: bool = False,
) -> None:
    async with engine:
        if email and password:
            try:
                if sign_up:
                    await engine.sign_up(email, password)
                else:
                    await engine.sign_in(email, password)
            except AuthError as exc:
                logger.error(f"Sign-in failed: {exc}")
                return
        if not engine.view.authenticated:
            logger.warning("Not signed in; nothing will be scheduled")

        elapsed = 0.0
        step = engine.settings.data_refresh_seconds
        while seconds is None or elapsed < seconds:
            await asyncio.sleep(step)
            elapsed += step
            summary = engine.view.summary()
            logger.info(
                f"BTC {summary['btc_price']} | {summary['active_agents']} active | "
                f"avg yield {summary['average_yield']:+.2f}"
            )


async def _serve(settings: HiveSettings, host: str, port: int) -> None:
    engine = await build_engine(settings)
    config = uvicorn.Config(create_app(engine), host=host, port=port, log_level=settings.log_level.lower())
    await uvicorn.Server(config).serve()


async def _headless(settings: HiveSettings, args: argparse.Namespace) -> None:
    engine = await build_engine(settings)
    await run_headless(engine, args.headless_seconds, args.email, args.password, sign_up=args.sign_up)


def main() -> None:
    parser = argparse.ArgumentParser(description="Hive dashboard engine")
    parser.add_argument("--serve", action="store_true", help="Run the FastAPI dashboard API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8001)
    parser.add_argument("--headless-seconds", type=float, default=None,
                        help="Stop the headless run after this many seconds")
    parser.add_argument("--email", default=None)
    parser.add_argument("--password", default=None)
    parser.add_argument("--sign-up", action="store_true", help="Create the account before signing in")
    parser.add_argument("--log-level", default=None)
    args = parser.parse_args()

    settings = HiveSettings.from_env()
    if args.log_level:
        settings.log_level = args.log_level.upper()
    setup_logging(settings.log_level)

    logger.info(
        f"Hive engine: symbol={settings.symbol} refresh={settings.data_refresh_seconds}s "
        f"simulation={'every %ss' % settings.simulation_seconds if settings.auto_simulate else 'off'}"
    )

    try:
        if args.serve:
            asyncio.run(_serve(settings, args.host, args.port))
        else:
            asyncio.run(_headless(settings, args))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
