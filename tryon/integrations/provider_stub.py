"""
Try-on provider stub - simulated provider for tests and dev mode
Enabled with env TRYON_PROVIDER_STUB=1 (or when PIAPI_API_KEY is missing)
"""

import uuid
from typing import Any, Dict, List, Optional

from tryon.models import ProviderStatus, TryOnKind
from tryon.utils.logging_config import get_logger

logger = get_logger(__name__)


class StubTryOnProvider:
    """Simulator: a task completes after N status checks"""

    def __init__(
        self,
        complete_after: int = 2,
        fail_with: Optional[str] = None,
        result_media: Optional[List[str]] = None,
    ):
        self.complete_after = max(1, complete_after)
        self.fail_with = fail_with
        self.result_media = result_media
        self._tasks: Dict[str, Dict[str, Any]] = {}

    async def submit_task(self, kind: TryOnKind, user_image: str, subject_media: str) -> str:
        task_id = f"stub_{uuid.uuid4().hex[:12]}"
        self._tasks[task_id] = {
            'kind': TryOnKind(kind),
            'user_image': user_image,
            'subject_media': subject_media,
            'checks': 0,
        }
        logger.info(f"[STUB] Task created: {task_id} kind={TryOnKind(kind).value}")
        return task_id

    async def check_status(self, provider_task_id: str) -> ProviderStatus:
        task = self._tasks.get(provider_task_id)
        if task is None:
            return ProviderStatus(status='failed', error=f'Unknown task {provider_task_id}')

        task['checks'] += 1
        if task['checks'] < self.complete_after:
            return ProviderStatus(status='pending')

        if self.fail_with:
            return ProviderStatus(status='failed', error=self.fail_with)

        if self.result_media is not None:
            media = list(self.result_media)
        else:
            ext = 'mp4' if task['kind'] == TryOnKind.VIDEO else 'png'
            media = [f"https://img.theapi.app/stub/{provider_task_id}.{ext}"]
        return ProviderStatus(status='completed', result_media=media)

    async def close(self):
        return None


def get_provider(settings=None):
    """Get the PiAPI client or the stub depending on settings"""
    from tryon.config import get_settings

    settings = settings or get_settings()
    if settings.use_stub_provider:
        logger.info("[STUB] Using try-on provider stub")
        return StubTryOnProvider()

    from tryon.integrations.piapi_client import PiAPIClient
    return PiAPIClient(
        api_key=settings.piapi_api_key,
        base_url=settings.piapi_base_url,
        timeout=settings.http_timeout_seconds,
        validate_media_urls=settings.validate_media_urls,
    )
