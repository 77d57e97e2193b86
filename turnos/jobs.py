# turnos/jobs.py

import asyncio
import logging
from datetime import datetime
from typing import Optional

from sqlmodel import Session

from turnos.config import SWEEP_BATCH_SIZE, SWEEP_INTERVAL_MINUTES
from turnos.lifecycle import sweep_expired
from turnos.notifications import dispatch_pending

logger = logging.getLogger(__name__)


def run_maintenance(bind, now: Optional[datetime] = None) -> dict:
    """One pass: settle stale appointments, then drain the notification outbox."""
    now = now or datetime.now()
    with Session(bind) as session:
        swept = sweep_expired(session, now, batch_size=SWEEP_BATCH_SIZE)
        sent = dispatch_pending(session)
    return {"expired": swept.expired, "attended": swept.attended, **sent}


async def run_maintenance_loop(bind, interval_minutes: int = SWEEP_INTERVAL_MINUTES):
    """Repeat run_maintenance every interval until cancelled."""
    logger.info(f"🚀 Starting appointment maintenance loop (every {interval_minutes} min)")

    while True:
        try:
            summary = await asyncio.to_thread(run_maintenance, bind, datetime.now())
            logger.info(f"✅ Maintenance pass finished: {summary}")
        except Exception as e:
            logger.error(f"❌ Error in maintenance loop: {e}")

        await asyncio.sleep(interval_minutes * 60)
