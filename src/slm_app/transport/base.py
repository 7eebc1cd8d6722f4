"""Messaging transport interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(slots=True)
class InboundMessage:
    topic: str
    payload: bytes


class TransportBase(ABC):
    """Publish/subscribe channel to the peer controllers."""

    @abstractmethod
    def subscribe(self, topic: str) -> None:
        pass

    @abstractmethod
    def publish(self, topic: str, payload: bytes) -> None:
        """Fire-and-forget publish, lowest delivery guarantee, not retained."""
        pass

    @abstractmethod
    def poll(self) -> Optional[InboundMessage]:
        """Next queued inbound message, or None without blocking."""
        pass

    def close(self) -> None:
        return None
