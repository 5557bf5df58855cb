"""Application startup and shutdown.

Builds the engine's object graph once per process (Redis, event bus and
publisher, warm pool, pipeline, executor chain, session store, job service)
and tears it down in reverse order.
"""

import asyncio
import logging
from dataclasses import dataclass, field

import redis.asyncio as redis
from redis.asyncio import BlockingConnectionPool as RedisConnectionPool

from judge import db, state
from judge.bus import EventBus, EventPublisher
from judge.config import get_settings
from judge.executors.chain import BestEffortExecutor, build_executor
from judge.languages import build_registry
from judge.sandbox.pipeline import ExecutionPipeline
from judge.sandbox.warmup import WarmPool
from judge.services.jobs import JobService
from judge.sessions import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class LifespanResources:
    """Container for resources initialized during lifespan."""

    redis_client: redis.Redis | None = None
    event_bus: EventBus | None = None
    event_publisher: EventPublisher | None = None
    warm_pool: WarmPool | None = None
    executor: BestEffortExecutor | None = None
    job_service: JobService | None = None
    background_tasks: list[asyncio.Task] = field(default_factory=list)
    db_enabled: bool = False


async def init_redis() -> redis.Redis:
    """Initialize Redis connection with connection pool."""
    settings = get_settings()

    redis_pool = RedisConnectionPool(
        host=settings.redis.host,
        port=settings.redis.port,
        password=settings.redis.password if settings.redis.password else None,
        max_connections=settings.redis.max_connections,
        timeout=settings.redis.pool_timeout_sec,
        health_check_interval=settings.redis.health_check_interval,
        socket_timeout=settings.redis.socket_timeout,
        socket_connect_timeout=settings.redis.socket_connect_timeout,
        retry_on_timeout=settings.redis.retry_on_timeout,
    )

    candidate_client = redis.Redis(connection_pool=redis_pool, decode_responses=True)
    if hasattr(candidate_client, "__await__"):
        return await candidate_client
    return candidate_client


async def init_database() -> bool:
    """Open the Postgres pool when ``ENABLE_DB=1``.

    Returns:
        True if the database was initialized, False otherwise.
    """
    if not get_settings().features.db:
        return False
    try:
        await db.init_pool()
        return True
    except Exception as e:
        logger.warning("Failed to initialize database: %s", e)
    return False


async def setup_resources() -> LifespanResources:
    settings = get_settings()
    resources = LifespanResources()

    resources.redis_client = await init_redis()
    resources.event_bus = EventBus(resources.redis_client, settings.events)
    resources.event_publisher = EventPublisher(resources.event_bus, settings.events.queue_size)
    resources.event_publisher.start()

    resources.warm_pool = WarmPool(settings)
    pipeline = ExecutionPipeline(settings, warm_pool=resources.warm_pool)
    resources.executor = build_executor(settings, pipeline)

    resources.db_enabled = await init_database()
    persistence = db if resources.db_enabled else None
    resources.job_service = JobService(
        SessionStore(resources.redis_client, settings.session),
        resources.executor,
        resources.event_publisher,
        submissions=persistence,
        problems=persistence,
        settings=settings,
    )

    if settings.features.prime_warm_pool and settings.sandbox.warmup_enabled:
        profiles = build_registry(settings).values()
        resources.background_tasks.append(
            asyncio.create_task(resources.warm_pool.prime(profiles), name="judge-warm-pool")
        )

    state.redis_client = resources.redis_client
    state.event_bus = resources.event_bus
    state.event_publisher = resources.event_publisher
    state.job_service = resources.job_service
    return resources


async def cleanup_resources(resources: LifespanResources) -> None:
    # Stop detached jobs first so their terminal writes still reach Redis
    if resources.job_service:
        await resources.job_service.shutdown()

    for task in resources.background_tasks:
        task.cancel()
    if resources.background_tasks:
        await asyncio.gather(*resources.background_tasks, return_exceptions=True)

    if resources.event_publisher:
        await resources.event_publisher.stop()

    if resources.db_enabled:
        try:
            await db.close_pool()
        except Exception as e:
            logger.warning("Failed to close database pool: %s", e)

    if resources.redis_client:
        aclose = getattr(resources.redis_client, "aclose", None)
        if callable(aclose):
            await aclose()
        else:
            close = getattr(resources.redis_client, "close", None)
            if callable(close):
                await close()

    state.redis_client = None
    state.event_bus = None
    state.event_publisher = None
    state.job_service = None
