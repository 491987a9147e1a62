from .dedup import DuplicateGuard, TTLCache
from .driver import DeliveryDriver, DriverOptions
from .models import (
    Chunk,
    ConnectionReport,
    DeliveryMetadata,
    DeliveryResult,
    DeliveryStatus,
    FailureReason,
    HealthReport,
    Persona,
    PipelineReport,
)
from .normalizer import normalize
from .personas import detect
from .service import BoundDelivery, DeliveryService, inspect_pipeline
from .splitter import split, telegram_len
from .transport import AiogramTransport, SendOutcome, SendStatus, Transport

__all__ = [
    "AiogramTransport",
    "BoundDelivery",
    "Chunk",
    "ConnectionReport",
    "DeliveryDriver",
    "DeliveryMetadata",
    "DeliveryResult",
    "DeliveryService",
    "DeliveryStatus",
    "DriverOptions",
    "DuplicateGuard",
    "FailureReason",
    "HealthReport",
    "Persona",
    "PipelineReport",
    "SendOutcome",
    "SendStatus",
    "TTLCache",
    "Transport",
    "detect",
    "inspect_pipeline",
    "normalize",
    "split",
    "telegram_len",
]
