import logging
from dataclasses import dataclass
from datetime import datetime
from threading import Lock
from typing import Callable

logger = logging.getLogger(__name__)

EVENT_BOOKING_CREATED = 'booking_created'
EVENT_BOOKING_CALLED = 'booking_called'
EVENT_BOOKING_COMPLETED = 'booking_completed'


@dataclass(frozen=True)
class QueueEvent:
    """A committed change to one booking in a doctor's queue.

    ``revision`` is the doctor's queue revision after the change, so consumers
    can order events for the same doctor. Patient identity is never included.
    """

    event_type: str
    doctor_id: int
    booking_id: int
    queue_number: int
    status: str
    revision: int
    occurred_at: datetime


QueueEventCallback = Callable[[QueueEvent], None]


class Subscription:
    def __init__(self, broker: 'QueueEventBroker', callback: QueueEventCallback, doctor_id: int | None) -> None:
        self._broker = broker
        self.callback = callback
        self.doctor_id = doctor_id

    def close(self) -> None:
        self._broker.unsubscribe(self)

    def __enter__(self) -> 'Subscription':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class QueueEventBroker:
    """In-process publish/subscribe channel for queue changes, keyed by doctor."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._subscriptions: list[Subscription] = []

    def subscribe(self, callback: QueueEventCallback, doctor_id: int | None = None) -> Subscription:
        """Register ``callback`` for one doctor's changes, or for every doctor when ``doctor_id`` is None."""
        subscription = Subscription(self, callback, doctor_id)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def subscriber_count(self, doctor_id: int | None = None) -> int:
        with self._lock:
            return sum(1 for subscription in self._subscriptions if subscription.doctor_id == doctor_id)

    def publish(self, event: QueueEvent) -> None:
        with self._lock:
            targets = [
                subscription
                for subscription in self._subscriptions
                if subscription.doctor_id is None or subscription.doctor_id == event.doctor_id
            ]

        for subscription in targets:
            try:
                subscription.callback(event)
            except Exception:
                logger.exception(
                    'Queue subscriber failed for %s on doctor %s.',
                    event.event_type,
                    event.doctor_id,
                )


def log_queue_event(event: QueueEvent) -> None:
    logger.info(
        'Queue event %s: doctor=%s booking=%s number=%s status=%s revision=%s',
        event.event_type,
        event.doctor_id,
        event.booking_id,
        event.queue_number,
        event.status,
        event.revision,
    )


queue_events = QueueEventBroker()
