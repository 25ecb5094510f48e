"""
Fake try-on provider for tests
Never makes real HTTP requests
"""

from typing import Any, Callable, List, Optional, Union

from tryon.models import ProviderStatus, TryOnKind

StatusScript = Union[ProviderStatus, Exception]


class FakeProvider:
    """Scriptable provider: statuses are returned (or raised) in order."""

    def __init__(
        self,
        statuses: Optional[List[StatusScript]] = None,
        default: Optional[ProviderStatus] = None,
        submit_error: Optional[Exception] = None,
        task_id: Optional[str] = "fake_task_1",
    ):
        self.statuses: List[StatusScript] = list(statuses or [])
        self.default = default or ProviderStatus(status="pending")
        self.submit_error = submit_error
        self.task_id = task_id
        self.submit_calls: List[dict] = []
        self.status_calls: List[str] = []
        self.before_status: Optional[Callable[[int], Any]] = None

    @classmethod
    def completing_on(cls, tick: int, media: List[str]) -> "FakeProvider":
        pending = [ProviderStatus(status="pending")] * (tick - 1)
        return cls(statuses=pending + [ProviderStatus(status="completed", result_media=list(media))])

    @classmethod
    def failing_on(cls, tick: int, error: str = "face not detected") -> "FakeProvider":
        pending = [ProviderStatus(status="pending")] * (tick - 1)
        return cls(statuses=pending + [ProviderStatus(status="failed", error=error)])

    async def submit_task(self, kind: TryOnKind, user_image: str, subject_media: str) -> str:
        self.submit_calls.append({
            "kind": TryOnKind(kind),
            "user_image": user_image,
            "subject_media": subject_media,
        })
        if self.submit_error is not None:
            raise self.submit_error
        return self.task_id

    async def check_status(self, provider_task_id: str) -> ProviderStatus:
        self.status_calls.append(provider_task_id)
        if self.before_status is not None:
            self.before_status(len(self.status_calls))
        if self.statuses:
            item = self.statuses.pop(0)
        else:
            item = self.default
        if isinstance(item, Exception):
            raise item
        return item
