"""
Task submission to the try-on provider.
"""
import asyncio

from tryon.errors import SubmissionError
from tryon.integrations.base import TryOnProvider
from tryon.models import TryOnRequest
from tryon.utils.correlation import correlation_tag
from tryon.utils.logging_config import get_logger

logger = get_logger(__name__)


class TaskSubmitter:
    """Submits one request; never retries on its own."""

    def __init__(self, provider: TryOnProvider):
        self.provider = provider

    async def submit(self, request: TryOnRequest) -> str:
        """
        Submit ``request`` to the provider.

        Returns:
            Provider task id

        Raises:
            SubmissionError: provider error, exception, or empty task id
        """
        logger.info(
            f"{correlation_tag()} [SUBMIT] kind={request.kind.value} user={request.user_id} "
            f"product={request.product_id}"
        )
        try:
            provider_task_id = await self.provider.submit_task(
                request.kind,
                request.user_image_ref,
                request.subject_media_ref,
            )
        except asyncio.CancelledError:
            raise
        except SubmissionError as e:
            logger.error(f"{correlation_tag()} [SUBMIT] rejected: {e}")
            raise
        except Exception as e:
            logger.error(f"{correlation_tag()} [SUBMIT] provider error: {e}", exc_info=True)
            raise SubmissionError(str(e) or type(e).__name__) from e

        if not provider_task_id or not str(provider_task_id).strip():
            logger.error(f"{correlation_tag()} [SUBMIT] provider returned empty task id")
            raise SubmissionError("Provider returned an empty task id")

        logger.info(f"{correlation_tag()} [SUBMIT] accepted provider_task_id={provider_task_id}")
        return str(provider_task_id)
