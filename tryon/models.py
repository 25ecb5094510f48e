"""
Data model for virtual try-on tasks.

TryOnRequest is immutable; TryOnTask is the mutable record that moves
forward through TaskState as the orchestrator drives it.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from tryon.errors import InvalidTransition


class TryOnKind(str, Enum):
    IMAGE = "image"
    VIDEO = "video"


class TaskState(str, Enum):
    CREATED = "created"
    DEBITED = "debited"
    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    REFUNDED = "refunded"


TERMINAL_STATES = frozenset({
    TaskState.COMPLETED,
    TaskState.FAILED,
    TaskState.TIMED_OUT,
    TaskState.REFUNDED,
})

# Forward-only edges. Submission errors go debited -> refunded directly.
ALLOWED_TRANSITIONS = {
    TaskState.CREATED: {TaskState.DEBITED},
    TaskState.DEBITED: {TaskState.SUBMITTED, TaskState.REFUNDED},
    TaskState.SUBMITTED: {TaskState.POLLING},
    TaskState.POLLING: {TaskState.COMPLETED, TaskState.FAILED, TaskState.TIMED_OUT},
    TaskState.COMPLETED: set(),
    TaskState.FAILED: {TaskState.REFUNDED},
    TaskState.TIMED_OUT: {TaskState.REFUNDED},
    TaskState.REFUNDED: set(),
}

REFUNDABLE_STATES = frozenset({TaskState.DEBITED, TaskState.FAILED, TaskState.TIMED_OUT})


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class TryOnRequest:
    """One confirmed try-on choice made by a user"""

    kind: TryOnKind
    cost: int
    user_image_ref: str
    subject_media_ref: str
    user_id: str
    product_id: str
    product_name: str = ""

    def __post_init__(self):
        # Accept plain strings for kind ("image"/"video")
        object.__setattr__(self, "kind", TryOnKind(self.kind))
        if self.cost <= 0:
            raise ValueError(f"cost must be positive, got {self.cost}")

    @classmethod
    def create(
        cls,
        kind: Any,
        user_id: str,
        product_id: str,
        user_image_ref: str,
        subject_media_ref: str,
        product_name: str = "",
        settings: Optional[Any] = None,
    ) -> "TryOnRequest":
        """Build a request priced from configuration for its kind."""
        from tryon.payments.pricing import cost_for

        kind = TryOnKind(kind)
        return cls(
            kind=kind,
            cost=cost_for(kind, settings),
            user_image_ref=user_image_ref,
            subject_media_ref=subject_media_ref,
            user_id=user_id,
            product_id=product_id,
            product_name=product_name,
        )

    def missing_fields(self) -> List[str]:
        missing = []
        for name in ("user_image_ref", "subject_media_ref", "user_id", "product_id"):
            value = getattr(self, name)
            if not value or not str(value).strip():
                missing.append(name)
        return missing


@dataclass
class TryOnTask:
    request: TryOnRequest
    id: str = field(default_factory=lambda: f"tryon_{uuid.uuid4().hex[:12]}")
    provider_task_id: Optional[str] = None
    state: TaskState = TaskState.CREATED
    attempts: int = 0
    result_media: List[str] = field(default_factory=list)
    error_message: Optional[str] = None
    created_at: str = field(default_factory=utcnow_iso)
    updated_at: str = field(default_factory=utcnow_iso)

    @property
    def cost(self) -> int:
        return self.request.cost

    @property
    def kind(self) -> TryOnKind:
        return self.request.kind

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def can_transition(self, new_state: TaskState) -> bool:
        return new_state in ALLOWED_TRANSITIONS[self.state]

    def transition(self, new_state: TaskState) -> None:
        """Move the task forward; raises InvalidTransition otherwise."""
        if not self.can_transition(new_state):
            raise InvalidTransition(
                f"Task {self.id}: {self.state.value} -> {new_state.value} is not allowed"
            )
        self.state = new_state
        self.updated_at = utcnow_iso()

    def to_record(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "provider_task_id": self.provider_task_id,
            "state": self.state.value,
            "attempts": self.attempts,
            "result_media": list(self.result_media),
            "error_message": self.error_message,
            "kind": self.request.kind.value,
            "cost": self.request.cost,
            "user_id": self.request.user_id,
            "product_id": self.request.product_id,
            "user_image_ref": self.request.user_image_ref,
            "subject_media_ref": self.request.subject_media_ref,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class ProviderStatus:
    """Normalized answer of a provider status check"""

    status: str  # pending | completed | failed
    result_media: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def is_completed(self) -> bool:
        return self.status == "completed"

    @property
    def is_failed(self) -> bool:
        return self.status == "failed"


@dataclass
class PreviewItem:
    """Product-like entity derived from a completed try-on"""

    id: str
    product_id: str
    user_id: str
    task_id: str
    kind: TryOnKind
    name: str
    description: str
    image_urls: List[str] = field(default_factory=list)
    video_urls: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=utcnow_iso)

    @property
    def is_video_preview(self) -> bool:
        return self.kind == TryOnKind.VIDEO

    @property
    def media(self) -> List[str]:
        return self.video_urls if self.is_video_preview else self.image_urls

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "user_id": self.user_id,
            "task_id": self.task_id,
            "kind": self.kind.value,
            "name": self.name,
            "description": self.description,
            "image_urls": list(self.image_urls),
            "video_urls": list(self.video_urls),
            "is_video_preview": self.is_video_preview,
            "is_personalized": True,
            "created_at": self.created_at,
        }
