from .models import CheckEvent, CheckEventType
from .emitter import CheckEventEmitter, NullEventEmitter, emit_safely
from .memory_emitter import MemoryQueueEventEmitter

__all__ = [
    "CheckEvent",
    "CheckEventType",
    "CheckEventEmitter",
    "NullEventEmitter",
    "MemoryQueueEventEmitter",
    "emit_safely",
]
