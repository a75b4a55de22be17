"""Microcredential title resolution.

Two passes: titles already at hand (embedded in enrollment rows, then the
Redis cache), followed by a single batched fetch for the ids still
unresolved. Fetched titles are written back to the cache.
"""

from collections.abc import Awaitable, Callable, Iterable, Mapping
from uuid import UUID

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError


logger = structlog.get_logger(__name__)

TITLE_CACHE_PREFIX = "microcredentials:title:"
DEFAULT_TITLE_CACHE_TTL = 3600

FetchTitles = Callable[[list[UUID]], Awaitable[Mapping[UUID, str]]]


def title_cache_key(microcredential_id: UUID) -> str:
    """Redis key holding one microcredential title."""
    return f"{TITLE_CACHE_PREFIX}{microcredential_id}"


async def _read_cache(cache: redis.Redis, ids: list[UUID]) -> dict[UUID, str]:
    try:
        values = await cache.mget([title_cache_key(i) for i in ids])
    except RedisError as e:
        # The title falls back to Cassandra
        logger.warning("title_cache_read_failed", error=str(e))
        return {}

    found = {}
    for microcredential_id, value in zip(ids, values, strict=True):
        if value:
            found[microcredential_id] = (
                value.decode() if isinstance(value, bytes) else value
            )
    return found


async def _write_cache(
    cache: redis.Redis, titles: Mapping[UUID, str], ttl: int
) -> None:
    try:
        pipe = cache.pipeline()
        for microcredential_id, title in titles.items():
            pipe.setex(title_cache_key(microcredential_id), ttl, title)
        await pipe.execute()
    except RedisError as e:
        logger.warning("title_cache_write_failed", error=str(e))


async def resolve_titles(
    ids: Iterable[UUID],
    fetch_missing: FetchTitles,
    known: Mapping[UUID, str | None] | None = None,
    cache: redis.Redis | None = None,
    ttl: int = DEFAULT_TITLE_CACHE_TTL,
) -> dict[UUID, str]:
    """Resolve display titles for a set of microcredentials.

    Args:
        ids: Microcredential ids to resolve
        fetch_missing: Batched lookup, called at most once with the misses
        known: Titles already embedded in fetched rows (may contain None)
        cache: Optional Redis client used as a title cache
        ttl: Cache TTL in seconds

    Returns:
        microcredential_id -> title for every id that resolved. Ids that
        stay unresolved are absent; callers apply their own fallback.
    """
    pending = list(dict.fromkeys(ids))
    resolved: dict[UUID, str] = {}

    for microcredential_id in pending:
        title = (known or {}).get(microcredential_id)
        if title:
            resolved[microcredential_id] = title

    misses = [i for i in pending if i not in resolved]
    if misses and cache is not None:
        resolved.update(await _read_cache(cache, misses))
        misses = [i for i in pending if i not in resolved]

    if not misses:
        return resolved

    fetched = {i: t for i, t in (await fetch_missing(misses)).items() if t}
    resolved.update(fetched)

    logger.debug(
        "microcredential_titles_fetched",
        requested=len(misses),
        found=len(fetched),
    )

    if fetched and cache is not None:
        await _write_cache(cache, fetched, ttl)

    return resolved
