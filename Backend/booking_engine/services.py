"""
Wiring of the engine components around one calendar store.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from .availability import AvailabilityCalculator
from .busy import BusyIntervalAggregator
from .core.config import Settings
from .reminders import NotificationDispatcher, parse_channels
from .reservations import ReservationManager
from .routing_forms import RoutingDecisionEngine
from .storage.base import CalendarStore


@dataclass
class BookingServices:
    store: CalendarStore
    aggregator: BusyIntervalAggregator
    calculator: AvailabilityCalculator
    reservations: ReservationManager
    routing: RoutingDecisionEngine


def build_services(
    store: CalendarStore,
    settings: Settings,
    dispatcher: Optional[NotificationDispatcher] = None,
) -> BookingServices:
    aggregator = BusyIntervalAggregator(
        store,
        staleness=timedelta(minutes=settings.integration_staleness_minutes),
    )
    calculator = AvailabilityCalculator(store, aggregator)
    reservations = ReservationManager(
        store,
        calculator,
        dispatcher=dispatcher,
        channels=parse_channels(settings.notification_channels_list),
        default_reminders=settings.default_reminder_minutes_list,
    )
    return BookingServices(
        store=store,
        aggregator=aggregator,
        calculator=calculator,
        reservations=reservations,
        routing=RoutingDecisionEngine(store),
    )
