"""
Event log shared by the market and the interest rate model.

Contracts communicate state changes to the outside world through events; the
model keeps them in a plain append-only list so simulations and tests can
inspect what happened and in which block.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class MarketEvent:
    """A single emitted event."""
    name: str                                       # Event name, e.g. "Accrue"
    block: Optional[int] = None                     # Block in which it was emitted
    args: Dict[str, Any] = field(default_factory=dict)


class EventLog:
    """Append-only list of events with a few lookup helpers."""

    def __init__(self):
        self.events: List[MarketEvent] = []

    def emit(self, name, block=None, **args):
        event = MarketEvent(name=name, block=block, args=args)
        self.events.append(event)
        return event

    def filter(self, name):
        """Returns every event with the given name, oldest first."""
        return [event for event in self.events if event.name == name]

    def last(self, name=None):
        """Returns the most recent event (optionally of a given name) or None."""
        for event in reversed(self.events):
            if name is None or event.name == name:
                return event
        return None

    def snapshot(self):
        return len(self.events)

    def restore(self, snapshot):
        del self.events[snapshot:]

    def __len__(self):
        return len(self.events)

    def __iter__(self):
        return iter(self.events)
