from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from typing import List, Optional
import asyncio
import logging
from datetime import datetime, timezone
from contextlib import asynccontextmanager

from .aggregation import AggregationEngine
from .codec import decode_event
from .config import Settings, get_settings
from .consumer import QueueConsumer
from .dual_sink import DualSinkPublisher
from .enricher import AzureMapsGeocoder, Enricher
from .errors import DecodeError
from .models import DashboardStats, Event
from .processor import BatchProcessor
from .queues import MessageQueue
from .store import EventStore, PartitionedStoreWriter
from .validator import validate_event

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


class AppState:
    def __init__(self, settings: Optional[Settings] = None):
        self.configure(settings or get_settings())

    def configure(self, settings: Settings):
        self.settings = settings

        self.primary_queue = MessageQueue(
            settings.db_path, settings.primary_queue_name, settings.visibility_timeout_seconds
        )
        self.backup_queue = MessageQueue(
            settings.db_path, settings.backup_queue_name, settings.visibility_timeout_seconds
        )
        self.poison_queue = MessageQueue(
            settings.db_path, settings.poison_queue_name, settings.visibility_timeout_seconds
        )
        self.store = EventStore(settings.db_path)

        geocoder = None
        if settings.maps_key:
            geocoder = AzureMapsGeocoder(
                settings.maps_key,
                timeout=settings.geocode_timeout_seconds,
                base_url=settings.maps_base_url,
            )
        self.enricher = Enricher(geocoder)
        self.processor = BatchProcessor(self.enricher, PartitionedStoreWriter(self.store))
        self.publisher = DualSinkPublisher(self.primary_queue, self.backup_queue)
        self.consumer = QueueConsumer(
            self.primary_queue,
            self.processor,
            self.poison_queue,
            max_dequeue_count=settings.max_dequeue_count,
            retry_delay=settings.retry_delay_seconds,
            poll_interval=settings.poll_interval_seconds,
        )
        self.aggregator = AggregationEngine(self.store)

    async def initialize(self):
        await self.store.initialize()
        for queue in (self.primary_queue, self.backup_queue, self.poison_queue):
            await queue.initialize()


state = AppState()


@asynccontextmanager
async def lifespan(app: FastAPI):
    await state.initialize()

    consumer_task = None
    if state.settings.consumer_enabled:
        consumer_task = asyncio.create_task(state.consumer.run())

    enrichment = "enabled" if state.enricher.geocoder else "disabled"
    logger.info(f"Application started (db={state.settings.db_path}, enrichment {enrichment})")

    yield

    if consumer_task is not None:
        consumer_task.cancel()
        try:
            await consumer_task
        except asyncio.CancelledError:
            logger.info("Consumer worker stopped")


app = FastAPI(
    title="Analytics Event Pipeline",
    description="Collects analytics events, enriches and stores them, and serves dashboard stats",
    version="1.0.0",
    lifespan=lifespan
)


@app.post("/api/events")
async def collect_event(request: Request):
    body = await request.body()
    try:
        event = decode_event(body)
    except DecodeError as e:
        logger.warning(f"Invalid event payload received: {e}")
        raise HTTPException(status_code=400, detail="Invalid event payload")

    if not validate_event(event):
        logger.warning("Invalid event payload received: missing required fields")
        raise HTTPException(status_code=400, detail="Invalid event payload")

    # keys and processing metadata are assigned downstream, never by the producer
    event.partition_key = None
    event.row_key = None
    event.batch_id = None
    event.processed_timestamp = None
    event.server_timestamp = datetime.now(timezone.utc)
    if event.timestamp_utc is None:
        event.timestamp_utc = event.server_timestamp

    result = await state.publisher.publish(event)
    logger.info(f"Event validated and queued: {event.event_type}")

    return {
        "status": "accepted",
        "primary": result.primary_ok,
        "backup": result.backup_ok
    }


@app.get("/api/analytics", response_model=DashboardStats)
async def get_analytics(days: Optional[int] = Query(None, ge=0, description="Window length in days")):
    window = state.settings.default_window_days if days is None else days
    try:
        return await state.aggregator.compute_stats(window)
    except Exception as e:
        logger.error(f"Failed to fetch analytics: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to fetch analytics"})


@app.get("/api/events/recent", response_model=List[Event])
async def get_recent_events(limit: int = Query(100, ge=1, le=1000)):
    try:
        return await state.aggregator.recent_events(limit)
    except Exception as e:
        logger.error(f"Failed to fetch recent events: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to fetch events"})


@app.get("/health")
async def health_check():
    return {
        "status": "healthy",
        "queues": {
            "primary": await state.primary_queue.count(),
            "backup": await state.backup_queue.count(),
            "poison": await state.poison_queue.count()
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8080)
