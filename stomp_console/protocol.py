"""
Broker client interface and the STOMP implementation the console talks through.
Handles the connection handshake, heart-beats and frame traffic on one socket.
"""
import socket
import ssl
import threading
import logging
from abc import ABC, abstractmethod
from enum import IntEnum
from typing import Callable, Dict, Optional

from .config import ConnectionConfig, parse_heartbeat
from .errors import ConnectError, ConnectionClosed, ReceiveError, TransportError
from .frame import (
    Command, Frame, FrameError, FrameReader, EOL,
    connect_frame, disconnect_frame, send_frame, subscribe_frame, unsubscribe_frame,
)
from .message import Message


logger = logging.getLogger(__name__)


class ConnectionState(IntEnum):
    """Connection states"""
    CONNECTING = 1
    CONNECTED = 2
    DISCONNECTING = 3
    DISCONNECTED = 4


class ConnectionListener:
    """Receives connection lifecycle notifications. Every hook defaults to a no-op."""

    def on_connecting(self, config: ConnectionConfig) -> None:
        pass

    def on_connected(self, config: ConnectionConfig, headers: Dict[str, str]) -> None:
        pass

    def on_connect_failed(self, config: ConnectionConfig, error: Exception) -> None:
        pass

    def on_misc_error(self, config: ConnectionConfig, detail: str) -> None:
        pass


class LoggingListener(ConnectionListener):
    """Writes lifecycle notifications to a logger"""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def on_connecting(self, config):
        self.log.info(f"Connecting to {config.endpoint} (vhost {config.virtual_host})")

    def on_connected(self, config, headers):
        version = headers.get('version', '1.0')
        server = headers.get('server', 'unknown server')
        self.log.info(f"Connected to {config.endpoint} using STOMP {version} ({server})")

    def on_connect_failed(self, config, error):
        self.log.error(f"Connection to {config.endpoint} failed: {error}")

    def on_misc_error(self, config, detail):
        self.log.warning(f"Connection error on {config.endpoint}: {detail}")


class BrokerClient(ABC):
    """What the console session needs from a broker connection"""

    @abstractmethod
    def connect(self, config: ConnectionConfig) -> 'BrokerClient':
        """Open the connection, raising ConnectError on failure"""

    @abstractmethod
    def subscribe(self, destination: str, headers: Dict[str, str]) -> None:
        """Start a subscription, raising TransportError on failure"""

    @abstractmethod
    def unsubscribe(self, destination: str, headers: Dict[str, str]) -> None:
        """End a subscription, raising TransportError on failure"""

    @abstractmethod
    def publish(self, destination: str, body: str, headers: Dict[str, str]) -> None:
        """Send a message, raising TransportError on failure"""

    @abstractmethod
    def receive(self) -> Message:
        """
        Block until the next message arrives.
        Raises ReceiveError for transient failures and ConnectionClosed once the
        connection is gone for good.
        """

    @abstractmethod
    def close(self) -> None:
        """Release the connection; a pending receive() ends with ConnectionClosed"""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def open_socket(config: ConnectionConfig) -> socket.socket:
    """Open the TCP (optionally TLS) socket for a connection"""
    sock = socket.create_connection((config.host, config.port), timeout=config.connect_timeout)
    if config.ssl:
        context = ssl.create_default_context()
        try:
            sock = context.wrap_socket(sock, server_hostname=config.host)
        except (OSError, ssl.SSLError):
            sock.close()
            raise
    return sock


class StompConnection(BrokerClient):
    """STOMP client connection over a single socket"""

    def __init__(self,
                 listener: Optional[ConnectionListener] = None,
                 socket_factory: Optional[Callable[[ConnectionConfig], socket.socket]] = None):
        self.listener = listener or LoggingListener()
        self.config: Optional[ConnectionConfig] = None
        self.state = ConnectionState.DISCONNECTED
        self.server_headers: Dict[str, str] = {}

        self._socket_factory = socket_factory or open_socket
        self._socket: Optional[socket.socket] = None
        self._stream = None
        self._reader: Optional[FrameReader] = None

        self._lock = threading.RLock()
        self._send_lock = threading.Lock()
        self._closing = threading.Event()
        self._heartbeat_thread: Optional[threading.Thread] = None

    @property
    def endpoint(self) -> str:
        return self.config.endpoint if self.config else 'unconnected'

    def connect(self, config: ConnectionConfig) -> 'StompConnection':
        """Open the socket and perform the CONNECT handshake"""
        with self._lock:
            if self.state == ConnectionState.CONNECTED:
                return self

            self.config = config
            self.state = ConnectionState.CONNECTING
            self._closing.clear()
            self.listener.on_connecting(config)

            try:
                self._socket = self._socket_factory(config)
                self._stream = self._socket.makefile('rb')
                self._reader = FrameReader(self._stream)
                self._write(connect_frame(config.virtual_host,
                                          config.login,
                                          config.passcode,
                                          config.heartbeat,
                                          config.connect_headers))
                reply = self._reader.read_frame()
            except (OSError, FrameError) as e:
                self._fail_connect(ConnectError(f"Could not connect to {config.endpoint}: {e}"))

            if reply is None:
                self._fail_connect(ConnectError(f"{config.endpoint} closed the connection during handshake"))
            if reply.command != Command.CONNECTED.value:
                detail = reply.headers.get('message') or reply.text.strip() or reply.command
                self._fail_connect(ConnectError(f"{config.endpoint} refused the connection: {detail}"))

            # Receives block until a frame arrives or the socket is shut down
            self._socket.settimeout(None)
            self.server_headers = dict(reply.headers)
            self.state = ConnectionState.CONNECTED
            self._start_heartbeat(reply.headers.get('heart-beat', '0,0'))

        self.listener.on_connected(config, self.server_headers)
        return self

    def subscribe(self, destination: str, headers: Dict[str, str]) -> None:
        self._send(subscribe_frame(destination, headers))
        logger.debug(f"Subscribed to {destination} with {headers}")

    def unsubscribe(self, destination: str, headers: Dict[str, str]) -> None:
        self._send(unsubscribe_frame(destination, headers))
        logger.debug(f"Unsubscribed from {destination} with {headers}")

    def publish(self, destination: str, body: str, headers: Dict[str, str]) -> None:
        self._send(send_frame(destination, body, headers))
        logger.debug(f"Sent {len(body)} characters to {destination}")

    def receive(self) -> Message:
        """Block until the next MESSAGE frame; heart-beats and receipts are skipped"""
        reader = self._reader
        if reader is None or self._closing.is_set():
            raise self._closed("Connection is not open")

        while True:
            try:
                frame = reader.read_frame()
            except FrameError as e:
                raise ReceiveError(f"Malformed frame: {e}") from e
            except (OSError, ValueError) as e:
                # ValueError: the stream was closed underneath us
                raise self._closed(f"Connection lost: {e}") from e

            if frame is None:
                raise self._closed("Connection closed by broker")

            if frame.command == Command.MESSAGE.value:
                return Message(
                    destination=frame.headers.get('destination', ''),
                    body=frame.text,
                    headers=dict(frame.headers),
                )

            if frame.command == Command.ERROR.value:
                detail = frame.headers.get('message') or frame.text.strip() or 'no detail'
                raise ReceiveError(f"Broker error: {detail}")

            logger.debug(f"Ignoring {frame.command} frame from {self.endpoint}")

    def close(self) -> None:
        """Disconnect from the broker"""
        with self._lock:
            if self._socket is None:
                return

            self._closing.set()
            if self.state == ConnectionState.CONNECTED:
                self.state = ConnectionState.DISCONNECTING
                try:
                    self._write(disconnect_frame())
                except OSError as e:
                    logger.debug(f"DISCONNECT to {self.endpoint} failed: {e}")

            self._shutdown_socket()
            self.state = ConnectionState.DISCONNECTED
            heartbeat_thread = self._heartbeat_thread
            self._heartbeat_thread = None

        if heartbeat_thread and heartbeat_thread.is_alive():
            heartbeat_thread.join(timeout=5)

        logger.info(f"Disconnected from {self.endpoint}")

    def _send(self, frame: Frame) -> None:
        if self.state != ConnectionState.CONNECTED:
            raise TransportError(f"Cannot send {frame.command}: not connected to {self.endpoint}")
        try:
            self._write(frame)
        except OSError as e:
            raise TransportError(f"Failed to send {frame.command} to {self.endpoint}: {e}") from e

    def _write(self, frame: Frame) -> None:
        with self._send_lock:
            self._socket.sendall(frame.serialize())

    def _fail_connect(self, error: ConnectError) -> None:
        self._shutdown_socket()
        if self._stream is not None:
            self._stream.close()
        self._stream = None
        self._reader = None
        self.state = ConnectionState.DISCONNECTED
        self.listener.on_connect_failed(self.config, error)
        raise error

    def _shutdown_socket(self) -> None:
        """Shut the socket down so a blocked reader wakes up, then release it"""
        sock, self._socket = self._socket, None
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass
        sock.close()

    def _closed(self, reason: str) -> ConnectionClosed:
        if self._closing.is_set():
            reason = "Connection closed by shutdown"
        self.state = ConnectionState.DISCONNECTED
        stream, self._stream = self._stream, None
        self._reader = None
        if stream is not None:
            stream.close()
        return ConnectionClosed(reason)

    def _start_heartbeat(self, server_heartbeat: str) -> None:
        try:
            _, server_incoming = parse_heartbeat(server_heartbeat)
        except ValueError as e:
            self.listener.on_misc_error(self.config, f"Ignoring server heart-beat header: {e}")
            return

        client_outgoing, _ = self.config.heartbeat
        if client_outgoing == 0 or server_incoming == 0:
            return

        interval = max(client_outgoing, server_incoming) / 1000.0
        self._heartbeat_thread = threading.Thread(
            target=self._heartbeat_worker,
            args=(interval,),
            daemon=True,
            name=f"StompHeartbeat-{self.endpoint}"
        )
        self._heartbeat_thread.start()
        logger.debug(f"Sending heart-beats to {self.endpoint} every {interval:.3f}s")

    def _heartbeat_worker(self, interval: float) -> None:
        """Background worker for sending heart-beats"""
        while not self._closing.wait(interval):
            sock = self._socket
            if sock is None:
                break
            try:
                with self._send_lock:
                    sock.sendall(EOL)
            except OSError as e:
                if not self._closing.is_set():
                    self.listener.on_misc_error(self.config, f"Heart-beat failed: {e}")
                break
