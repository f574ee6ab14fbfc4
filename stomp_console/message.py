"""
Inbound message model and destination helpers.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Optional

from .errors import InvalidDestination


DESTINATION_TYPES = ('topic', 'queue', 'exchange')


def destination_for(kind: str, name: str) -> str:
    """Build a '/type/name' destination, rejecting unknown types"""
    if kind not in DESTINATION_TYPES:
        raise InvalidDestination(
            f"Unknown destination type '{kind}', expected one of {', '.join(DESTINATION_TYPES)}"
        )
    if not name:
        raise InvalidDestination(f"Missing {kind} name")
    return f"/{kind}/{name}"


@dataclass(frozen=True)
class Message:
    """A message received from the broker"""
    destination: str
    body: str
    headers: Dict[str, str] = field(default_factory=dict)
    received_at: Optional[datetime] = None

    def stamped(self, when: Optional[datetime] = None) -> 'Message':
        """Copy of this message carrying its arrival time"""
        return replace(self, received_at=when or datetime.now())

    def __str__(self) -> str:
        return f"Message(destination={self.destination}, headers={len(self.headers)}, body_size={len(self.body)})"
