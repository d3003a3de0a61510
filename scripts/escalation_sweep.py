#!/usr/bin/env python3
"""Leave Escalation Sweep — escalate requests stuck in `pending`.

Any pending request older than the threshold is escalated to a management
user of its company as the system (no human escalator). Requests that can
no longer be escalated are logged and skipped. Meant to run from cron.

Usage:
    python -m scripts.escalation_sweep                  # LEAVE_ESCALATION_SWEEP_HOURS from .env
    python -m scripts.escalation_sweep --hours 48       # override the threshold

Requires in .env (project root):
    DATABASE_URL, JWT_SECRET

Exit codes:
    0 = sweep ran (possibly escalating nothing)
    1 = sweep disabled: no threshold configured or given
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

# ── Path setup ────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

# Load .env from project root before settings are instantiated
env_path = PROJECT_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)

from hrops.config import settings  # noqa: E402
from hrops.database import async_session_factory, engine  # noqa: E402
from hrops.leave.service import LeaveService  # noqa: E402

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("escalation_sweep")


async def run(hours: int) -> int:
    async with async_session_factory() as db:
        escalated = await LeaveService.sweep_stale_requests(db, hours)
    await engine.dispose()
    return len(escalated)


def main():
    parser = argparse.ArgumentParser(
        description="Escalate leave requests left pending for too long",
    )
    parser.add_argument("--hours", type=int, default=None,
                        help="Pending age threshold in hours "
                             "(default: LEAVE_ESCALATION_SWEEP_HOURS)")
    args = parser.parse_args()

    hours = args.hours or settings.LEAVE_ESCALATION_SWEEP_HOURS
    if not hours:
        logger.error("No threshold: set LEAVE_ESCALATION_SWEEP_HOURS or pass --hours")
        sys.exit(1)

    count = asyncio.run(run(hours))
    logger.info("Done: %d request(s) escalated (threshold %dh)", count, hours)


if __name__ == "__main__":
    main()
