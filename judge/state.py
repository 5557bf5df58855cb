from typing import Optional

import redis.asyncio as redis

from judge.bus import EventBus, EventPublisher
from judge.services.jobs import JobService

# Global runtime state initialized in lifespan.setup_resources
redis_client: Optional[redis.Redis] = None
event_bus: Optional[EventBus] = None
event_publisher: Optional[EventPublisher] = None
job_service: Optional[JobService] = None
