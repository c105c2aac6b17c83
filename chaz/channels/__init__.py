"""Chat channels."""

from chaz.channels.base import BaseChannel, InboundMessage, Room

__all__ = ["BaseChannel", "InboundMessage", "Room"]
