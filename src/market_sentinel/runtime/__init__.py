"""market_sentinel.runtime: Poll scheduling, event publishing and advisory."""

from market_sentinel.runtime.advisory import (
    NO_DATA_ADVISORY,
    AdvisoryGenerator,
    AdvisoryResult,
    NoDataAdvisor,
    OpenRouterAdvisor,
    parse_advisory_response,
)
from market_sentinel.runtime.poll import CycleResult, PollLoop
from market_sentinel.runtime.publisher import (
    CollectingPublisher,
    EventType,
    LoggingPublisher,
    MarketEvent,
    Publisher,
)

__all__ = [
    "PollLoop",
    "CycleResult",
    "EventType",
    "MarketEvent",
    "Publisher",
    "LoggingPublisher",
    "CollectingPublisher",
    "AdvisoryGenerator",
    "AdvisoryResult",
    "NO_DATA_ADVISORY",
    "NoDataAdvisor",
    "OpenRouterAdvisor",
    "parse_advisory_response",
]
