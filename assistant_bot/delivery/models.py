# assistant_bot/delivery/models.py
from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ------------------------------------------------------------------ #
# 1. Персоны                                                         #
# ------------------------------------------------------------------ #
class Persona(str, Enum):
    HIGH_EFFORT = "high_effort"
    BALANCED = "balanced"
    FAST = "fast"
    CONVERSATIONAL = "conversational"
    FALLBACK = "fallback"
    GENERIC = "generic"


class PersonaProfile(BaseModel):
    model_config = ConfigDict(frozen=True)

    persona: Persona
    inter_chunk_delay_ms: int
    display_emoji: str
    display_name: str
    markers: Tuple[str, ...] = ()


# ------------------------------------------------------------------ #
# 2. Запрос                                                          #
# ------------------------------------------------------------------ #
class DeliveryMetadata(BaseModel):
    """Options recognised by the delivery pipeline; unknown keys are ignored."""

    # camelCase keys (modelHint, forceDelivery, ...) are accepted as well
    model_config = ConfigDict(frozen=True, extra="ignore", alias_generator=to_camel, populate_by_name=True)

    title: Optional[str] = None
    model_hint: Optional[str] = None
    force_delivery: bool = False
    silent_after_first: bool = True
    no_emojis: bool = False
    no_styling: bool = False
    allow_large_response: bool = False


class MessageRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    chat_target: Any = None
    raw_content: str = ""
    metadata: DeliveryMetadata = Field(default_factory=DeliveryMetadata)


class NormalizedContent(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    persona: Persona


# ------------------------------------------------------------------ #
# 3. Чанки                                                           #
# ------------------------------------------------------------------ #
class Chunk(BaseModel):
    index: int
    total_count: int
    body: str
    header: str = ""
    footer: str = ""
    is_first: bool = False
    is_last: bool = False
    forced: bool = False
    splits_code: bool = False

    @property
    def text(self) -> str:
        return f"{self.header}{self.body}{self.footer}"


# ------------------------------------------------------------------ #
# 4. Результат доставки                                              #
# ------------------------------------------------------------------ #
class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    PARTIAL = "partial"
    FAILED = "failed"
    DUPLICATE = "duplicate"
    REJECTED = "rejected"


class FailureReason(str, Enum):
    EMPTY_CONTENT = "empty_content"
    MISSING_TARGET = "missing_target"
    CHUNK_FAILED = "chunk_failed"
    FIRST_CHUNK_FAILED = "first_chunk_failed"
    PIPELINE_ERROR = "pipeline_error"


class DeliveryResult(BaseModel):
    success: bool
    status: DeliveryStatus
    chunks_planned: int = 0
    chunks_delivered: int = 0
    failure_reason: Optional[FailureReason] = None
    elapsed_ms: int = 0
    retries_used: int = 0
    fallbacks_used: int = 0
    persona: Optional[Persona] = None
    emergency_sent: bool = False


class PipelineReport(BaseModel):
    """Intermediate pipeline state, produced without any transport I/O."""

    persona: Persona
    persona_source: str
    original_length: int
    normalized_length: int
    chunk_count: int
    chunk_sizes: List[int]
    chunk_previews: List[str]
    forced_breaks: List[int]
    duplicate_hash: Optional[str]
    would_suppress: bool


# ------------------------------------------------------------------ #
# 5. Здоровье и диагностика                                          #
# ------------------------------------------------------------------ #
class HealthIssue(BaseModel):
    type: str
    severity: str = "warning"
    message: str


class HealthReport(BaseModel):
    status: str
    checked_at: float
    issues: List[HealthIssue] = Field(default_factory=list)
    performance: Dict[str, float] = Field(default_factory=dict)

    @property
    def healthy(self) -> bool:
        return not self.issues


class ConnectionReport(BaseModel):
    """Outcome of a live connectivity check against one chat."""

    success: bool
    stage: str
    elapsed_ms: int = 0
    diagnostics: Dict[str, bool] = Field(default_factory=dict)
    success_rate: Optional[float] = None
    error: str = ""
