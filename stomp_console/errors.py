"""
Error taxonomy for the console session.
"""


class SessionError(Exception):
    """Base class for errors reported back to the console user"""
    pass


class ConnectError(SessionError):
    """No connection could be established with the broker"""
    pass


class InvalidDestination(SessionError):
    """Destination type is not one of topic, queue or exchange"""
    pass


class AlreadySubscribed(SessionError):
    """Destination already has an active subscription"""

    def __init__(self, destination: str):
        super().__init__(f"Already subscribed to {destination}")
        self.destination = destination


class NotSubscribed(SessionError):
    """Destination has no active subscription"""

    def __init__(self, destination: str):
        super().__init__(f"Not subscribed to {destination}")
        self.destination = destination


class TransportError(SessionError):
    """The broker connection rejected or failed a subscribe, unsubscribe or send"""
    pass


class PublishError(TransportError):
    """A publish could not be handed to the broker"""
    pass


class ReceiveError(SessionError):
    """A receive failed but the connection is still usable"""
    pass


class ConnectionClosed(SessionError):
    """The connection is gone for good; receiving must stop"""
    pass


class CallbackError(SessionError):
    """A callback reference could not be resolved to a callable"""
    pass
