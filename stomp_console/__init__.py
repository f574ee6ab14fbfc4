"""
Interactive STOMP console session components.
"""

from .errors import (
    SessionError, ConnectError, InvalidDestination, AlreadySubscribed, NotSubscribed,
    TransportError, PublishError, ReceiveError, ConnectionClosed, CallbackError,
)
from .config import Config, ConnectionConfig, get_config, initialize_config, parse_heartbeat
from .message import Message, destination_for
from .frame import Frame, FrameBuilder, FrameReader, FrameError
from .protocol import BrokerClient, ConnectionListener, LoggingListener, StompConnection
from .formatter import render
from .subscription import Subscription, SubscriptionRegistry
from .options import SessionOptions, OptionsSnapshot
from .receiver import ReceiveLoop, LoopState
from .session import Session, Publication, open_session
from .commands import CommandDispatcher, CommandResult

__all__ = [
    'SessionError', 'ConnectError', 'InvalidDestination', 'AlreadySubscribed', 'NotSubscribed',
    'TransportError', 'PublishError', 'ReceiveError', 'ConnectionClosed', 'CallbackError',
    'Config', 'ConnectionConfig', 'get_config', 'initialize_config', 'parse_heartbeat',
    'Message', 'destination_for',
    'Frame', 'FrameBuilder', 'FrameReader', 'FrameError',
    'BrokerClient', 'ConnectionListener', 'LoggingListener', 'StompConnection',
    'render',
    'Subscription', 'SubscriptionRegistry',
    'SessionOptions', 'OptionsSnapshot',
    'ReceiveLoop', 'LoopState',
    'Session', 'Publication', 'open_session',
    'CommandDispatcher', 'CommandResult',
]
