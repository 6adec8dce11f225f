"""Circuit breaker: disables a gateway channel by writing its status directly."""

import logging
from typing import Callable, Optional

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from ..database import create_engine
from ..models.gateway import Channel, CHANNEL_STATUS_MANUALLY_DISABLED

logger = logging.getLogger(__name__)


class CircuitBreaker:
    """
    Owns its own connection to the gateway's primary store, separate from
    the read path used by the sync engine. The engine is created on first use
    and discarded after any error so the next call reconnects fresh.
    """

    def __init__(
        self,
        database_url: str,
        timeout: Optional[float] = None,
        engine_factory: Callable[..., AsyncEngine] = create_engine,
    ):
        self.database_url = database_url
        self.timeout = timeout
        self._engine_factory = engine_factory
        self._engine: Optional[AsyncEngine] = None

    def _get_engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = self._engine_factory(self.database_url, timeout=self.timeout)
            logger.info("[CIRCUIT BREAKER] Write connection initialised")
        return self._engine

    async def reset(self) -> None:
        """Drop the cached engine."""
        engine, self._engine = self._engine, None
        if engine is not None:
            try:
                await engine.dispose()
            except (SQLAlchemyError, OSError) as e:
                logger.debug(f"[CIRCUIT BREAKER] Error while disposing engine: {e}")

    async def disable(self, channel_id: int) -> bool:
        """
        Set the channel's status to manually disabled.
        Returns True only if exactly one channel row was updated.
        """
        if not self.database_url:
            logger.error("[CIRCUIT BREAKER] BREAKER_DATABASE_URL not set, cannot disable channels")
            return False

        try:
            engine = self._get_engine()
            async with engine.begin() as conn:
                result = await conn.execute(
                    update(Channel)
                    .where(Channel.id == channel_id)
                    .values(status=CHANNEL_STATUS_MANUALLY_DISABLED)
                )
        except (SQLAlchemyError, OSError) as e:
            logger.error(f"[CIRCUIT BREAKER] Error disabling channel {channel_id}: {e}")
            await self.reset()
            return False

        if result.rowcount == 1:
            logger.info(f"[CIRCUIT BREAKER] Channel {channel_id} disabled")
            return True

        logger.warning(f"[CIRCUIT BREAKER] Channel {channel_id} not found (rows affected: {result.rowcount})")
        return False

    async def close(self) -> None:
        await self.reset()
