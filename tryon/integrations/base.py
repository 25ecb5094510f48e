"""
Provider interface the orchestrator depends on.

Core modules only use this protocol; concrete clients live next to it.
"""
from typing import Protocol, runtime_checkable

from tryon.models import ProviderStatus, TryOnKind


@runtime_checkable
class TryOnProvider(Protocol):

    async def submit_task(self, kind: TryOnKind, user_image: str, subject_media: str) -> str:
        """Submit a try-on task; returns the provider task id."""
        ...

    async def check_status(self, provider_task_id: str) -> ProviderStatus:
        """Current status of a submitted task."""
        ...
