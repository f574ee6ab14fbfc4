"""
Subscription registry for the console session.
Maps each destination to the subscription id handed to the broker.
"""
import threading
import time
import logging
from typing import Dict, List, Optional
from dataclasses import dataclass, field

from .errors import AlreadySubscribed, NotSubscribed
from .message import destination_for
from .protocol import BrokerClient


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Subscription:
    """An active subscription to one destination"""
    destination: str
    subscription_id: int
    headers: Dict[str, str] = field(default_factory=dict)
    created_at: float = field(default_factory=time.time)


class SubscriptionRegistry:
    """
    Owns the destination -> subscription mapping and id allocation.

    Ids start at 0 and grow by one per successful subscribe across the whole
    registry; they are never reused. The mapping is only changed after the
    broker call succeeded, and no lock readers need is held across that call.

    The command lock is held across the broker round trip on purpose, so two
    subscribes to one destination cannot both reach the broker. Readers never
    take it.
    """

    def __init__(self, client: BrokerClient):
        self.client = client
        self._subscriptions: Dict[str, Subscription] = {}  # destination -> Subscription
        self._next_id = 0

        # Guards the mapping; readers on other threads only ever take this one
        self._lock = threading.RLock()
        # Serializes subscribe/unsubscribe, including their broker round trip
        self._command_lock = threading.Lock()

    def subscribe(self, kind: str, name: str, headers: Optional[Dict] = None) -> int:
        """Subscribe to /kind/name and return the allocated subscription id"""
        destination = destination_for(kind, name)
        headers = dict(headers or {})

        with self._command_lock:
            with self._lock:
                if destination in self._subscriptions:
                    raise AlreadySubscribed(destination)
                subscription_id = self._next_id

            frame_headers = {**headers, 'id': subscription_id}
            self.client.subscribe(destination, frame_headers)

            with self._lock:
                self._subscriptions[destination] = Subscription(
                    destination=destination,
                    subscription_id=subscription_id,
                    headers=headers,
                )
                self._next_id = subscription_id + 1

        logger.info(f"Subscribed to {destination} as subscription {subscription_id}")
        return subscription_id

    def unsubscribe(self, kind: str, name: str, headers: Optional[Dict] = None) -> None:
        """Unsubscribe from /kind/name"""
        destination = destination_for(kind, name)

        with self._command_lock:
            with self._lock:
                subscription = self._subscriptions.get(destination)
            if subscription is None:
                raise NotSubscribed(destination)

            frame_headers = {**(headers or {}), 'id': subscription.subscription_id}
            self.client.unsubscribe(destination, frame_headers)

            with self._lock:
                del self._subscriptions[destination]

        logger.info(f"Unsubscribed from {destination} (subscription {subscription.subscription_id})")

    def list(self) -> List[str]:
        """Destinations currently subscribed to, in subscription order"""
        with self._lock:
            return list(self._subscriptions.keys())

    def get(self, destination: str) -> Optional[Subscription]:
        with self._lock:
            return self._subscriptions.get(destination)

    def subscriptions(self) -> List[Subscription]:
        with self._lock:
            return list(self._subscriptions.values())

    def __contains__(self, destination: str) -> bool:
        with self._lock:
            return destination in self._subscriptions

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscriptions)
