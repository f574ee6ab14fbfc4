"""
The console session: one broker connection, its subscriptions, the display
options and the receive loop, shared by reference between the interactive
commands and the background receiver.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from .config import ConnectionConfig
from .errors import PublishError, TransportError
from .message import destination_for
from .options import MessageCallback, OptionsSnapshot, SessionOptions
from .protocol import BrokerClient
from .receiver import ReceiveLoop
from .subscription import Subscription, SubscriptionRegistry


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Publication:
    """What a publish actually sent"""
    destination: str
    body: str
    headers: Dict[str, str]


class Session:
    """Session state and the operations console commands run against it"""

    def __init__(self,
                 client: BrokerClient,
                 connection: Optional[ConnectionConfig] = None,
                 options: Optional[SessionOptions] = None,
                 output: Callable[[str], None] = print):
        self.client = client
        self.connection = connection
        self.options = options or SessionOptions()
        self.registry = SubscriptionRegistry(client)
        self.receiver = ReceiveLoop(
            client,
            self.options,
            endpoint=connection.endpoint if connection else 'broker',
            output=output,
            on_stop=self._on_receiver_stopped,
        )

    def start(self) -> 'Session':
        """Start draining inbound messages in the background"""
        self.receiver.start()
        return self

    def close(self, timeout: float = 5.0) -> None:
        """Release the broker connection and wait for the receiver to stop"""
        self.client.close()
        if self.receiver.started and not self.receiver.join(timeout):
            logger.warning(f"Receive loop did not stop within {timeout}s")

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def stopped(self) -> bool:
        return self.receiver.stopped

    @property
    def stop_reason(self) -> Optional[Exception]:
        return self.receiver.stop_reason

    # Subscriptions

    def subscribe(self, kind: str, name: str, headers: Optional[Dict] = None) -> int:
        return self.registry.subscribe(kind, name, headers)

    def unsubscribe(self, kind: str, name: str, headers: Optional[Dict] = None) -> None:
        self.registry.unsubscribe(kind, name, headers)

    def list_subscriptions(self) -> List[str]:
        return self.registry.list()

    def subscriptions(self) -> List[Subscription]:
        return self.registry.subscriptions()

    # Publishing

    def publish(self, kind: str, name: str, body: str, headers: Optional[Dict] = None) -> Publication:
        destination = destination_for(kind, name)
        effective = {str(k): str(v) for k, v in (headers or {}).items()}
        try:
            self.client.publish(destination, body, effective)
        except TransportError as e:
            raise PublishError(f"Could not publish to {destination}: {e}") from e
        logger.debug(f"Published to {destination}")
        return Publication(destination=destination, body=body, headers=effective)

    def topic(self, name: str, body: str, headers: Optional[Dict] = None) -> Publication:
        return self.publish('topic', name, body, headers)

    def queue(self, name: str, body: str, headers: Optional[Dict] = None) -> Publication:
        return self.publish('queue', name, body, headers)

    def exchange(self, name: str, body: str, headers: Optional[Dict] = None) -> Publication:
        return self.publish('exchange', name, body, headers)

    # Display options

    def set_verbose(self, verbose: bool) -> None:
        self.options.set_verbose(verbose)

    def toggle_verbose(self) -> bool:
        return self.options.toggle_verbose()

    def set_long_format(self, template: str) -> None:
        self.options.set_long_format(template)

    def set_short_format(self, template: str) -> None:
        self.options.set_short_format(template)

    def set_callback(self, callback: MessageCallback) -> None:
        self.options.set_callback(callback)

    def reset_callback(self) -> None:
        self.options.reset_callback()

    def current_options(self) -> OptionsSnapshot:
        return self.options.snapshot()

    def _on_receiver_stopped(self, reason: Optional[Exception]) -> None:
        if reason is not None:
            logger.info(f"Session receiver stopped: {reason}")


def open_session(client: BrokerClient,
                 connection: ConnectionConfig,
                 options: Optional[SessionOptions] = None,
                 output: Callable[[str], None] = print) -> Session:
    """Connect the client and wrap it in a session that is not started yet"""
    client.connect(connection)
    return Session(client, connection, options=options, output=output)
