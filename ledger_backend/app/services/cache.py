"""
Report Cache backed by Redis.

Reports are stored under keys that embed a per-owner ledger version.
Every ledger write bumps the version, so cached reports computed before
the write are never served again; they simply expire.

Redis is an optimisation only: any Redis failure is logged and the report
is recomputed.
"""

import logging
from typing import Awaitable, Callable, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError as PydanticValidationError
from redis.exceptions import RedisError

from ledger_backend.app.core.config import settings

logger = logging.getLogger("ledger.cache")

VERSION_KEY_PREFIX = "ledger:version:"
REPORT_KEY_PREFIX = "ledger:report:"

M = TypeVar("M", bound=BaseModel)


class ReportCache:

    def __init__(self, redis, ttl_seconds: Optional[int] = None):
        self.redis = redis
        self.ttl_seconds = settings.report_cache_ttl_seconds if ttl_seconds is None else ttl_seconds

    @staticmethod
    def version_key(owner_id: int) -> str:
        return f"{VERSION_KEY_PREFIX}{owner_id}"

    @staticmethod
    def report_key(owner_id: int, version: int, name: str, params: str) -> str:
        return f"{REPORT_KEY_PREFIX}{owner_id}:v{version}:{name}:{params}"

    async def current_version(self, owner_id: int) -> Optional[int]:
        """Owner's ledger version, or None when Redis is unavailable."""
        try:
            raw = await self.redis.get(self.version_key(owner_id))
        except (RedisError, OSError):
            logger.warning("Redis unavailable, reading ledger version failed", exc_info=True)
            return None
        return int(raw) if raw is not None else 0

    async def bump_version(self, owner_id: int) -> None:
        """Invalidate every cached report of the owner."""
        try:
            await self.redis.incr(self.version_key(owner_id))
        except (RedisError, OSError):
            # a missed bump leaves stale reports for at most ttl_seconds
            logger.error(
                "Failed to bump ledger version",
                extra={"owner_id": owner_id},
                exc_info=True
            )

    async def get_or_compute(
        self,
        owner_id: int,
        name: str,
        params: str,
        model: Type[M],
        compute: Callable[[], Awaitable[M]]
    ) -> M:
        """
        Serve a cached report or compute and store it.

        Args:
            owner_id: Owner the report belongs to
            name: Report name (cash_pulse, profit_lens)
            params: Canonical string of the report parameters
            model: Pydantic model of the report
            compute: Coroutine factory producing the report
        """
        version = await self.current_version(owner_id)
        if version is None:
            return await compute()

        key = self.report_key(owner_id, version, name, params)
        try:
            cached = await self.redis.get(key)
        except (RedisError, OSError):
            logger.warning("Redis unavailable, computing report", exc_info=True)
            cached = None

        if cached is not None:
            try:
                return model.model_validate_json(cached)
            except PydanticValidationError:
                logger.warning("Discarding unreadable cached report", extra={"key": key})

        report = await compute()

        try:
            await self.redis.set(key, report.model_dump_json(), ex=self.ttl_seconds)
        except (RedisError, OSError):
            logger.warning("Failed to cache report", extra={"key": key}, exc_info=True)

        return report
