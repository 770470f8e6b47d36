"""Outbound event channel for quote and signal updates."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class EventType(StrEnum):
    MARKET_DATA_UPDATE = "market_data_update"
    SIGNAL_UPDATE = "signal_update"
    HIGH_CONFIDENCE_SIGNAL = "high_confidence_signal"


class MarketEvent(BaseModel):
    """One fire-and-forget notification."""

    model_config = ConfigDict(frozen=True)

    type: EventType
    payload: dict[str, Any]
    emitted_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


@runtime_checkable
class Publisher(Protocol):
    """Delivery is best effort; callers do not wait for acknowledgement."""

    async def publish(self, event: MarketEvent) -> None: ...


class LoggingPublisher:
    """Writes events to the log. The default when no channel is wired up."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    async def publish(self, event: MarketEvent) -> None:
        logger.log(
            self._level,
            "%s %s",
            event.type,
            json.dumps(event.payload, default=str)[:500],
        )


class CollectingPublisher:
    """Keeps events in memory, in publish order."""

    def __init__(self) -> None:
        self.events: list[MarketEvent] = []

    async def publish(self, event: MarketEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[MarketEvent]:
        return [e for e in self.events if e.type == event_type]
