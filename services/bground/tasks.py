from __future__ import annotations
from typing import Any, Dict
import asyncio
import logging
from dataclasses import asdict

from services.bground import CeleryManager
from services.queue.worker import run_worker

celery_app = CeleryManager()


@celery_app.celery_app.task(name="queue.run_worker")
def run_queue_worker() -> Dict[str, Any]:
    """
    One scheduled queue run:
      - claims jobs up to the count and time limits,
      - purges old jobs and expired cache entries.
    """
    try:
        report = asyncio.run(run_worker())
    except Exception as e:
        logging.error(f"[Queue Worker] Scheduled run crashed: {e}", exc_info=True)
        raise
    return asdict(report)
