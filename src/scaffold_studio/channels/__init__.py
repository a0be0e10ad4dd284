"""Per-project log channels."""

from .models import OutputEvent, OutputKind
from .registry import CallbackSubscriber, LogChannelRegistry, QueueSubscriber, Subscriber

__all__ = [
    "CallbackSubscriber",
    "LogChannelRegistry",
    "OutputEvent",
    "OutputKind",
    "QueueSubscriber",
    "Subscriber",
]
