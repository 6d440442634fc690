from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Event(BaseModel):
    partition_key: Optional[str] = Field(None, alias="partitionKey", description="YYYYMMDD date bucket")
    row_key: Optional[str] = Field(None, alias="rowKey", description="Unique id within the partition")

    event_type: Optional[str] = Field(None, alias="eventType", description="e.g. page_view, button_click")
    timestamp_utc: Optional[datetime] = Field(None, alias="timestampUtc", description="Client event time")
    user_id: Optional[str] = Field(None, alias="userId")
    session_id: Optional[str] = Field(None, alias="sessionId")

    url: Optional[str] = None
    referrer: Optional[str] = None
    browser: Optional[str] = None
    device: Optional[str] = None
    screen_size: Optional[str] = Field(None, alias="screenSize")
    ip_address: Optional[str] = Field(None, alias="ipAddress")
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    city: Optional[str] = None
    country: Optional[str] = None

    server_timestamp: Optional[datetime] = Field(None, alias="serverTimestamp", description="Ingestion time")
    batch_id: Optional[str] = Field(None, alias="batchId")
    processed_timestamp: Optional[datetime] = Field(None, alias="processedTimestamp")
    properties_json: Optional[str] = Field(None, alias="propertiesJson", description="Event-specific properties as JSON")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "eventType": "page_view",
                "timestampUtc": "2025-10-21T14:30:00Z",
                "userId": "anon-4f2a",
                "sessionId": "sess-91c0",
                "url": "/home",
                "browser": "Chrome 120",
                "device": "Desktop",
                "latitude": 47.6062,
                "longitude": -122.3321,
            }
        },
    )

    @field_validator("timestamp_utc", "server_timestamp", "processed_timestamp")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @property
    def event_time(self) -> Optional[datetime]:
        return self.timestamp_utc or self.server_timestamp

    @property
    def is_processed(self) -> bool:
        return self.batch_id is not None and self.processed_timestamp is not None


class PageCount(BaseModel):
    url: str
    count: int


class BrowserCount(BaseModel):
    browser: str
    count: int


class CityCount(BaseModel):
    city: str
    count: int


class HourCount(BaseModel):
    hour: str
    count: int


class DashboardStats(BaseModel):
    total_events: int = Field(0, alias="totalEvents")
    unique_users: int = Field(0, alias="uniqueUsers")
    unique_sessions: int = Field(0, alias="uniqueSessions")
    top_pages: List[PageCount] = Field(default_factory=list, alias="topPages")
    top_browsers: List[BrowserCount] = Field(default_factory=list, alias="topBrowsers")
    top_cities: List[CityCount] = Field(default_factory=list, alias="topCities")
    events_by_hour: List[HourCount] = Field(default_factory=list, alias="eventsByHour")

    model_config = ConfigDict(populate_by_name=True)


class PublishResult(BaseModel):
    primary_ok: bool
    backup_ok: bool
    primary_error: Optional[str] = None
    backup_error: Optional[str] = None

    @property
    def all_succeeded(self) -> bool:
        return self.primary_ok and self.backup_ok


class GeoCandidate(BaseModel):
    locality: Optional[str] = None
    region: Optional[str] = None


class QueueMessage(BaseModel):
    message_id: int
    body: str
    dequeue_count: int
