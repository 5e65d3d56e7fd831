import asyncio
import logging
from typing import NoReturn

from aiohttp import web

from social.graze.enscache.app.config import HealthGaugeAppKey

logger = logging.getLogger(__name__)


async def tick_health_task(app: web.Application, interval: float = 30.0) -> NoReturn:
    """
    Tick the health gauge every interval seconds, reducing the failure count by 1 each time.
    """

    logger.info("Starting health gauge task")

    health_gauge = app[HealthGaugeAppKey]
    while True:
        await health_gauge.tick()
        await asyncio.sleep(interval)
