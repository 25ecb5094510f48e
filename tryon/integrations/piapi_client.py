"""
PiAPI face-swap client - async client with retry/backoff on status checks
"""

import asyncio
import re
from typing import Any, Dict, List, Optional

import aiohttp

from tryon.config import get_settings
from tryon.errors import ProviderStatusError, SubmissionError
from tryon.models import ProviderStatus, TryOnKind
from tryon.utils.correlation import correlation_tag
from tryon.utils.logging_config import get_logger
from tryon.utils.retry import backoff_delay

logger = get_logger(__name__)

MEDIA_EXTENSION_RE = re.compile(r'\.(png|jpe?g|webp|mp4|mov|webm)(\?|$)', re.IGNORECASE)
HTTP_URL_RE = re.compile(r'^https?://', re.IGNORECASE)

COMPLETED_STATUSES = ('completed', 'success')
FAILED_STATUSES = ('failed',)


class PiAPIError(Exception):
    """Base class for PiAPI client errors"""
    pass


class PiAPINetworkError(PiAPIError):
    """Network error (retried)"""
    pass


class PiAPIServerError(PiAPIError):
    """Server error 5xx (retried)"""
    pass


class PiAPIRateLimitError(PiAPIError):
    """Rate limit 429 (retried with a longer delay)"""
    pass


class PiAPIClientError4xx(PiAPIError):
    """Client error 4xx (not retried, except 429)"""
    pass


def build_submit_payload(kind: TryOnKind, user_image: str, subject_media: str) -> Dict[str, Any]:
    """Body of POST /api/v1/task for face-swap"""
    kind = TryOnKind(kind)
    if kind == TryOnKind.VIDEO:
        return {
            "model": "Qubico/video-toolkit",
            "task_type": "face-swap",
            "input": {
                "target_video": subject_media,
                "swap_image": user_image,
            },
        }
    return {
        "model": "Qubico/image-toolkit",
        "task_type": "face-swap",
        "input": {
            "target_image": subject_media,
            "swap_image": user_image,
        },
    }


def extract_media_urls(obj: Any) -> List[str]:
    """
    Deep search of http(s) URLs in a response payload.

    URLs with a known media extension win; otherwise every URL found is
    returned in document order.
    """
    urls: List[str] = []

    def visit(value: Any) -> None:
        if not value:
            return
        if isinstance(value, list):
            for item in value:
                visit(item)
        elif isinstance(value, dict):
            for item in value.values():
                visit(item)
        elif isinstance(value, str) and HTTP_URL_RE.match(value):
            urls.append(value)

    visit(obj)
    media = [u for u in urls if MEDIA_EXTENSION_RE.search(u)]
    return media or urls


def _known_media(data: Dict[str, Any]) -> List[str]:
    for section in ('output', 'result'):
        block = data.get(section)
        if not isinstance(block, dict):
            continue
        images = block.get('images')
        if isinstance(images, list) and images:
            return [str(u) for u in images if u]
    for section in ('output', 'result'):
        block = data.get(section)
        if not isinstance(block, dict):
            continue
        for key in ('image', 'image_url', 'video', 'video_url'):
            value = block.get(key)
            if isinstance(value, str) and value:
                return [value]
    return []


def parse_status_payload(payload: Dict[str, Any]) -> ProviderStatus:
    """
    Normalize a GET /api/v1/task/{id} response into ProviderStatus.

    Returns:
        ProviderStatus with status pending | completed | failed
    """
    data = payload.get('data') if isinstance(payload.get('data'), dict) else payload
    status = str(data.get('status') or '').lower()

    if status in COMPLETED_STATUSES:
        media = _known_media(data) or extract_media_urls(data)
        if media:
            return ProviderStatus(status='completed', result_media=media)
        return ProviderStatus(status='failed', error='Completed without result media')

    if status in FAILED_STATUSES:
        error = data.get('error')
        message = error.get('message') if isinstance(error, dict) else None
        if not message:
            message = ', '.join(str(m) for m in (data.get('error_messages') or []) if m)
        return ProviderStatus(status='failed', error=message or 'Task failed')

    return ProviderStatus(status='pending')


class PiAPIClient:
    """Async PiAPI face-swap client (image-toolkit / video-toolkit)"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        validate_media_urls: Optional[bool] = None,
    ):
        settings = get_settings()
        self.api_key = api_key or settings.piapi_api_key
        self.base_url = (base_url or settings.piapi_base_url).rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.http_timeout_seconds)
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.validate_media_urls = (
            settings.validate_media_urls if validate_media_urls is None else validate_media_urls
        )

        self._session: Optional[aiohttp.ClientSession] = None

    def _headers(self) -> Dict[str, str]:
        """Request headers"""
        headers = {
            'Accept': 'application/json',
            'Content-Type': 'application/json',
        }
        if self.api_key:
            headers['x-api-key'] = self.api_key
        return headers

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create the session"""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self):
        """Close the session"""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _request_json(self, method: str, url: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        session = await self._get_session()
        async with session.request(method, url, json=payload, headers=self._headers()) as response:
            if response.status >= 400:
                text = await response.text()
                raise aiohttp.ClientResponseError(
                    response.request_info,
                    response.history,
                    status=response.status,
                    message=text[:300],
                )
            return await response.json(content_type=None)

    @staticmethod
    def _should_retry(error: Exception) -> bool:
        if isinstance(error, aiohttp.ClientResponseError):
            return error.status == 429 or 500 <= error.status < 600
        return isinstance(error, (aiohttp.ClientError, asyncio.TimeoutError))

    @staticmethod
    def _classify(error: Exception) -> PiAPIError:
        if isinstance(error, PiAPIError):
            return error
        if isinstance(error, aiohttp.ClientResponseError):
            if error.status == 429:
                return PiAPIRateLimitError(f"Rate limit exceeded: {error.message}")
            if 500 <= error.status < 600:
                return PiAPIServerError(f"Server error {error.status}: {error.message}")
            return PiAPIClientError4xx(f"HTTP {error.status}: {error.message}")
        if isinstance(error, (aiohttp.ClientError, asyncio.TimeoutError)):
            return PiAPINetworkError(f"Network error: {error}")
        return PiAPIError(f"Request failed: {error}")

    async def _retry_with_backoff(self, func, *args, **kwargs):
        """Retry with exponential backoff and jitter"""
        last_error: Optional[Exception] = None

        for attempt in range(self.max_retries + 1):
            try:
                return await func(*args, **kwargs)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_error = e
                if attempt >= self.max_retries or not self._should_retry(e):
                    break

                delay = backoff_delay(attempt + 1, self.base_delay, self.max_delay)
                if isinstance(e, aiohttp.ClientResponseError) and e.status == 429:
                    delay *= 2
                logger.warning(
                    f"[RETRY] Attempt {attempt + 1}/{self.max_retries + 1} failed: {self._classify(e)}, "
                    f"retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)

        raise self._classify(last_error)

    async def _media_url_ok(self, url: str, accepted_prefixes: tuple) -> bool:
        """HEAD check: 2xx and a matching content-type"""
        try:
            session = await self._get_session()
            async with session.head(url, allow_redirects=True) as response:
                content_type = response.headers.get('Content-Type', '')
                return response.status < 400 and content_type.startswith(accepted_prefixes)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"[PIAPI] HEAD {url} failed: {e}")
            return False

    async def submit_task(self, kind: TryOnKind, user_image: str, subject_media: str) -> str:
        """
        Create a face-swap task

        Args:
            kind: image or video
            user_image: URL of the user photo (swap_image)
            subject_media: URL of the product media (target_image / target_video)

        Returns:
            provider task id

        Raises:
            SubmissionError: provider rejected the task or returned no task id
        """
        if not self.api_key:
            raise SubmissionError("PIAPI_API_KEY not configured")

        kind = TryOnKind(kind)
        if self.validate_media_urls:
            if not await self._media_url_ok(user_image, ('image/',)):
                raise SubmissionError("Invalid user image URL")
            subject_types = ('video/',) if kind == TryOnKind.VIDEO else ('image/',)
            if not await self._media_url_ok(subject_media, subject_types):
                raise SubmissionError(f"Invalid product {kind.value} URL")

        url = f"{self.base_url}/api/v1/task"
        payload = build_submit_payload(kind, user_image, subject_media)
        try:
            # Submissions are not retried: a repeated POST may create a second task
            result = await self._request_json('POST', url, payload)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SubmissionError(str(self._classify(e))) from e

        data = result.get('data') if isinstance(result.get('data'), dict) else {}
        task_id = data.get('task_id') or result.get('task_id')
        if not task_id:
            message = result.get('message') or 'No task_id in response'
            raise SubmissionError(f"PiAPI rejected task: {message}")

        logger.info(f"{correlation_tag()} [PIAPI] task created provider_task_id={task_id} kind={kind.value}")
        return str(task_id)

    async def check_status(self, provider_task_id: str) -> ProviderStatus:
        """
        Get the task status

        Raises:
            ProviderStatusError: HTTP/network error after retries (transient for polling)
        """
        url = f"{self.base_url}/api/v1/task/{provider_task_id}"
        try:
            payload = await self._retry_with_backoff(self._request_json, 'GET', url)
        except PiAPIError as e:
            raise ProviderStatusError(f"Status check failed for {provider_task_id}: {e}") from e
        return parse_status_payload(payload)
