"""
Bridge lifecycle events.

Bridges publish typed events to their subscribers. Handlers are called
synchronously in subscription order; a handler may return an awaitable, which
is scheduled on the running loop.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional

if TYPE_CHECKING:
    from .bridge import Bridge


@dataclass(frozen=True)
class BridgeEvent:
    bridge: "Bridge"


@dataclass(frozen=True)
class BridgeOnline(BridgeEvent):
    """The bridge answered discovery again after being marked offline"""


@dataclass(frozen=True)
class BridgeOffline(BridgeEvent):
    """The bridge missed too many discovery sweeps in a row"""


@dataclass(frozen=True)
class BridgeIPChanged(BridgeEvent):
    ip: str
    previous_ip: Optional[str] = None


@dataclass(frozen=True)
class BridgeDestroyed(BridgeEvent):
    """Emitted once, when the bridge is torn down"""


class Subscription:
    """Handle returned by Bridge.subscribe()"""

    def __init__(self, handlers: list["BridgeEventHandler"], handler: "BridgeEventHandler"):
        self._handlers = handlers
        self.handler = handler

    @property
    def active(self) -> bool:
        return self.handler in self._handlers

    def unsubscribe(self) -> None:
        if self.handler in self._handlers:
            self._handlers.remove(self.handler)


# Handler type definition
BridgeEventHandler = Callable[[BridgeEvent], Optional[Awaitable[Any]]]
