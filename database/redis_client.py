"""
Redis client for the daily quiz cache.

One Redis hash per calendar day:
    daily_quiz:<YYYY-MM-DD>
        quiz        → QuizRecord JSON as generated (progress fields empty)
        expires_at  → epoch seconds; past this the record is unreadable
        progress:…  → one field per graded answer (see ProgressPath.field)

Progress lives in separate hash fields so a STAR or code grade is a single
HSET that never rewrites sibling segments or other questions. A sorted set
(daily_quiz:index) orders days for history listing.
"""

import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Callable, List, Optional

import redis
from redis.asyncio import Redis
from redis.exceptions import WatchError
from pydantic import BaseModel, ValidationError

from generation.errors import CacheUnavailable, InvalidProgressPath, QuizNotFound
from generation.schemas import ProgressPath, QuizRecord

log = logging.getLogger("database.redis")

# ─── Config ────────────────────────────────────────────────────────────────────

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
RETENTION_DAYS = int(os.getenv("QUIZ_RETENTION_DAYS", "7"))
RETENTION_SECONDS = RETENTION_DAYS * 24 * 60 * 60

INDEX_KEY = "daily_quiz:index"
MAX_WATCH_RETRIES = 5

_redis_client: Optional[Redis] = None


def get_redis() -> Redis:
    """Get or create Redis connection."""
    global _redis_client
    if _redis_client is None:
        _redis_client = Redis.from_url(REDIS_URL, decode_responses=True)
    return _redis_client


# ─── Key helpers ───────────────────────────────────────────────────────────────

def _quiz_key(date_key: str) -> str:
    return f"daily_quiz:{date_key}"


def _day_score(date_key: str) -> float:
    day = datetime.strptime(date_key, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    return day.timestamp()


def _is_expired(expires_at: Optional[str], now: float) -> bool:
    try:
        return int(expires_at) <= now
    except (TypeError, ValueError):
        return True


def _decode_quiz(raw: Optional[str]) -> Optional[dict]:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


# ─── Cache ─────────────────────────────────────────────────────────────────────

class QuizCache:
    def __init__(self, client: Optional[Redis] = None, clock: Callable[[], float] = time.time):
        self._client = client
        self.clock = clock

    @property
    def redis(self) -> Redis:
        if self._client is None:
            self._client = get_redis()
        return self._client

    async def get(self, date_key: str) -> Optional[QuizRecord]:
        """Return the live record for a day, or None if absent, expired or unreadable."""
        try:
            fields = await self.redis.hgetall(_quiz_key(date_key))
        except redis.RedisError as e:
            raise CacheUnavailable(f"Cache read failed for {date_key}: {e}") from e

        if not fields or "quiz" not in fields:
            return None
        if _is_expired(fields.get("expires_at"), self.clock()):
            log.info(f"[CACHE] {date_key} expired; treating as absent")
            return None

        data = _decode_quiz(fields["quiz"])
        if data is None:
            log.error(f"[CACHE] {date_key} quiz field is not a JSON object; treating as absent")
            return None
        for name, raw in fields.items():
            if not name.startswith("progress:"):
                continue
            try:
                ProgressPath.from_field(name).apply(data, json.loads(raw))
            except (InvalidProgressPath, ValueError) as e:
                log.warning(f"[CACHE] Ignoring stale progress field {name}: {e}")
        try:
            return QuizRecord.model_validate(data)
        except ValidationError as e:
            log.error(f"[CACHE] {date_key} no longer matches QuizRecord; treating as absent: {e}")
            return None

    def _queue_write(self, pipe, date_key: str, record: QuizRecord, ttl: int) -> None:
        key = _quiz_key(date_key)
        pipe.delete(key)
        pipe.hset(key, mapping={
            "quiz": record.model_dump_json(),
            "expires_at": str(record.expiry_timestamp),
        })
        pipe.expire(key, max(1, int(ttl)))
        pipe.zadd(INDEX_KEY, {date_key: _day_score(date_key)})
        pipe.zremrangebyscore(INDEX_KEY, "-inf", self.clock() - RETENTION_SECONDS - 86400)

    async def put(self, date_key: str, record: QuizRecord, ttl: int) -> None:
        """Overwrite the day's record, dropping any progress stored for it."""
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                self._queue_write(pipe, date_key, record, ttl)
                await pipe.execute()
        except redis.RedisError as e:
            raise CacheUnavailable(f"Cache write failed for {date_key}: {e}") from e

    async def put_if_absent(self, date_key: str, record: QuizRecord, ttl: int) -> bool:
        """Write only if no live record exists. Returns True if this call wrote."""
        key = _quiz_key(date_key)
        try:
            for _ in range(MAX_WATCH_RETRIES):
                async with self.redis.pipeline(transaction=True) as pipe:
                    try:
                        await pipe.watch(key)
                        quiz, expires_at = await pipe.hmget(key, "quiz", "expires_at")
                        if quiz is not None and not _is_expired(expires_at, self.clock()):
                            await pipe.unwatch()
                            return False
                        pipe.multi()
                        self._queue_write(pipe, date_key, record, ttl)
                        await pipe.execute()
                        return True
                    except WatchError:
                        log.info(f"[CACHE] {date_key} changed during create; retrying")
        except redis.RedisError as e:
            raise CacheUnavailable(f"Cache write failed for {date_key}: {e}") from e
        raise CacheUnavailable(f"Gave up creating {date_key} after {MAX_WATCH_RETRIES} conflicts")

    async def partial_update(
        self,
        date_key: str,
        path: ProgressPath,
        value: Optional[BaseModel],
    ) -> None:
        """
        Set one progress field of an existing record.

        Raises:
            QuizNotFound: no live record for date_key
            InvalidProgressPath: the addressed question does not exist
        """
        key = _quiz_key(date_key)
        value_data = value.model_dump(mode="json") if value is not None else None
        try:
            for _ in range(MAX_WATCH_RETRIES):
                async with self.redis.pipeline(transaction=True) as pipe:
                    try:
                        await pipe.watch(key)
                        quiz, expires_at = await pipe.hmget(key, "quiz", "expires_at")
                        base = _decode_quiz(quiz)
                        if base is None or _is_expired(expires_at, self.clock()):
                            raise QuizNotFound(date_key)
                        # Validates the index against the stored question list.
                        path.apply(base, value_data)
                        pipe.multi()
                        pipe.hset(key, path.field, json.dumps(value_data))
                        await pipe.execute()
                        log.info(f"[CACHE] {date_key} {path.field} updated")
                        return
                    except WatchError:
                        log.info(f"[CACHE] {date_key} changed during update; retrying")
        except redis.RedisError as e:
            raise CacheUnavailable(f"Cache update failed for {date_key}: {e}") from e
        raise CacheUnavailable(f"Gave up updating {date_key} after {MAX_WATCH_RETRIES} conflicts")

    async def list_recent(self, limit: int = RETENTION_DAYS) -> List[QuizRecord]:
        """Live records, newest day first, at most `limit`."""
        try:
            date_keys = await self.redis.zrevrange(INDEX_KEY, 0, -1)
        except redis.RedisError as e:
            raise CacheUnavailable(f"Cache index read failed: {e}") from e

        records: List[QuizRecord] = []
        for date_key in date_keys:
            if len(records) >= limit:
                break
            record = await self.get(date_key)
            if record is not None:
                records.append(record)
        return records


_quiz_cache: Optional[QuizCache] = None


def get_quiz_cache() -> QuizCache:
    global _quiz_cache
    if _quiz_cache is None:
        _quiz_cache = QuizCache()
    return _quiz_cache
