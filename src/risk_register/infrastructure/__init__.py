"""In-process infrastructure: the event bus and the in-memory repository."""

from risk_register.infrastructure.event_bus import EventHandler, IEventBus, InMemoryEventBus

__all__ = ["EventHandler", "IEventBus", "InMemoryEventBus"]
