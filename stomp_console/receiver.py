"""
Background loop that drains inbound messages from the broker connection.
"""
import threading
import logging
from enum import IntEnum
from typing import Callable, Optional

from .errors import ConnectionClosed, ReceiveError
from .formatter import render
from .message import Message
from .options import SessionOptions
from .protocol import BrokerClient


logger = logging.getLogger(__name__)


class LoopState(IntEnum):
    """Receive loop states"""
    RUNNING = 1
    STOPPED = 2


class ReceiveLoop:
    """
    Pulls messages from the client, renders them with the current display
    template, prints the line and hands the message to the session callback.

    Receive errors are logged and the loop carries on. Only ConnectionClosed
    ends it. Messages are handled one at a time, so a slow callback delays
    the messages behind it.
    """

    def __init__(self,
                 client: BrokerClient,
                 options: SessionOptions,
                 endpoint: str = 'broker',
                 output: Callable[[str], None] = print,
                 on_stop: Optional[Callable[[Optional[Exception]], None]] = None):
        self.client = client
        self.options = options
        self.endpoint = endpoint
        self.output = output
        self.on_stop = on_stop

        self.state = LoopState.RUNNING
        self.stop_reason: Optional[Exception] = None
        self.received_count = 0
        self.error_count = 0

        self._stopped = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Run the loop on a daemon thread"""
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self.run,
            daemon=True,
            name=f"ReceiveLoop-{self.endpoint}"
        )
        self._thread.start()

    def run(self) -> None:
        """Loop until the connection is closed"""
        logger.debug(f"Receive loop started for {self.endpoint}")
        try:
            while self.step():
                pass
        finally:
            self.state = LoopState.STOPPED
            self._stopped.set()
            if self.on_stop is not None:
                self.on_stop(self.stop_reason)

    def step(self) -> bool:
        """Handle one receive; returns False once the loop has to stop"""
        try:
            message = self.client.receive()
        except ConnectionClosed as e:
            self.stop_reason = e
            logger.info(f"Receive loop for {self.endpoint} stopped: {e}")
            return False
        except ReceiveError as e:
            self.error_count += 1
            logger.error(f"Receive error from {self.endpoint}: {e}")
            return True

        self.dispatch(message.stamped())
        return True

    def dispatch(self, message: Message) -> None:
        options = self.options.snapshot()
        self.output(render(options.template, message))
        self.received_count += 1

        try:
            options.callback(message)
        except Exception as e:
            logger.error(f"Callback error for message from {message.destination}: {e}")

    @property
    def started(self) -> bool:
        return self._thread is not None

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the loop to stop; True if it did"""
        return self._stopped.wait(timeout)
