"""
Completed try-on results: media ordering, saved results, preview items.
"""
import re
import time
from typing import Dict, List, Optional, Pattern, Union

from tryon.messages import feature_name, t
from tryon.models import PreviewItem, TaskState, TryOnKind, TryOnTask
from tryon.services.notifications import NotificationChannel
from tryon.services.preview import PreviewCollection
from tryon.storage.base import BaseStorage
from tryon.utils.correlation import correlation_tag
from tryon.utils.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_PREFERRED_SOURCE = r'theapi\.app'


def compile_source_pattern(pattern: Optional[str] = None) -> Pattern[str]:
    """Compile a preferred-source pattern; raises re.error when it is invalid."""
    return re.compile(pattern or DEFAULT_PREFERRED_SOURCE, re.IGNORECASE)


def order_result_media(media: List[str], pattern: Union[str, Pattern[str], None] = None) -> List[str]:
    """
    Stable partition: URIs matching ``pattern`` (case-insensitive when given as a string) first.

    >>> order_result_media(["b.com/1", "theapi.app/2", "b.com/3"])
    ['theapi.app/2', 'b.com/1', 'b.com/3']
    """
    regex = pattern if isinstance(pattern, re.Pattern) else compile_source_pattern(pattern)
    preferred = [m for m in media if regex.search(m)]
    others = [m for m in media if not regex.search(m)]
    return preferred + others


def build_preview_item(task: TryOnTask, media: List[str]) -> PreviewItem:
    request = task.request
    name = request.product_name or request.product_id
    stamp = int(time.time() * 1000)
    if request.kind == TryOnKind.VIDEO:
        return PreviewItem(
            id=f"personalized_video_{request.product_id}_{stamp}",
            product_id=request.product_id,
            user_id=request.user_id,
            task_id=task.id,
            kind=TryOnKind.VIDEO,
            name=t("preview_video_name", name=name),
            description=t("preview_video_description", name=name),
            video_urls=list(media),
        )
    return PreviewItem(
        id=f"virtual_tryon_{request.product_id}_{stamp}",
        product_id=request.product_id,
        user_id=request.user_id,
        task_id=task.id,
        kind=TryOnKind.IMAGE,
        name=name,
        description=t("preview_image_description", name=name),
        image_urls=list(media),
    )


class ResultHandler:
    """Publishes each completed task exactly once."""

    def __init__(
        self,
        store: Optional[BaseStorage],
        preview: PreviewCollection,
        notifier: NotificationChannel,
        preferred_source_pattern: Optional[str] = None,
    ):
        self.store = store
        self.preview = preview
        self.notifier = notifier
        self.preferred_source = compile_source_pattern(preferred_source_pattern)
        self._published: Dict[str, PreviewItem] = {}

    def published(self, task_id: str) -> Optional[PreviewItem]:
        return self._published.get(task_id)

    async def publish(self, task: TryOnTask) -> PreviewItem:
        """
        Order media, save the result, append a PreviewItem and notify.

        Args:
            task: Task in ``completed`` state

        Returns:
            The task's PreviewItem (the same one on repeated calls)
        """
        existing = self._published.get(task.id)
        if existing is not None:
            logger.info(f"{correlation_tag()} [RESULT] task={task.id} already published (idempotent)")
            return existing

        if task.state != TaskState.COMPLETED:
            raise ValueError(f"Task {task.id} is {task.state.value}, only completed tasks are published")

        media = order_result_media(task.result_media, self.preferred_source)
        task.result_media = media
        item = build_preview_item(task, media)
        self._published[task.id] = item

        request = task.request
        if self.store is not None:
            try:
                await self.store.save_result(request.user_id, request.product_id, media)
            except Exception as e:
                logger.error(
                    f"{correlation_tag()} [RESULT] task={task.id} failed to save result "
                    f"user={request.user_id} product={request.product_id}: {e}"
                )

        await self.preview.append(item)

        feature = feature_name(request.kind)
        await self.notifier.notify(
            'ready',
            request.user_id,
            t("notify_ready_title", feature=feature),
            t("notify_ready_subtitle"),
            image=media[0] if media else None,
        )

        logger.info(
            f"{correlation_tag()} [RESULT] task={task.id} published item={item.id} media={len(media)}"
        )
        return item

    async def saved_results(self, user_id: str, product_id: str) -> List[str]:
        """Previously saved media for (user, product), empty if none."""
        if self.store is None:
            return []
        record = await self.store.get_saved_result(user_id, product_id)
        return list(record.get('media', [])) if record else []
