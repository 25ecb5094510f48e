"""
Tests for result publishing: media ordering, exactly-once preview items.
"""
import re

import pytest

from tryon.models import TaskState, TryOnKind, TryOnRequest, TryOnTask
from tryon.services.notifications import NotificationChannel
from tryon.services.preview import PreviewCollection
from tryon.services.results import ResultHandler, order_result_media


def completed_task(kind=TryOnKind.IMAGE, media=("x", "y"), product_name="Silk Dress"):
    request = TryOnRequest(
        kind=kind,
        cost=25,
        user_image_ref="https://cdn.example.com/me.jpg",
        subject_media_ref="https://cdn.example.com/subject",
        user_id="u1",
        product_id="p1",
        product_name=product_name,
    )
    task = TryOnTask(request=request, provider_task_id="fake_task_1")
    task.state = TaskState.COMPLETED
    task.result_media = list(media)
    return task


@pytest.fixture
def handler(store):
    return ResultHandler(store, PreviewCollection(), NotificationChannel(store))


def test_order_preferred_source_first():
    b = "https://cdn.other.com/b.png"
    a = "https://img.theapi.app/a.png"
    b2 = "https://cdn.other.com/b2.png"

    assert order_result_media([b, a, b2]) == [a, b, b2]


def test_order_is_stable_and_case_insensitive():
    media = ["https://x.com/1", "https://IMG.TheAPI.App/2", "https://x.com/3", "https://theapi.app/4"]
    assert order_result_media(media) == [
        "https://IMG.TheAPI.App/2", "https://theapi.app/4", "https://x.com/1", "https://x.com/3",
    ]


def test_order_custom_pattern_and_empty():
    assert order_result_media([], r"cdn\.example") == []
    assert order_result_media(["a", "cdn.example/b"], r"cdn\.example") == ["cdn.example/b", "a"]


def test_invalid_source_pattern_fails_at_construction(store):
    with pytest.raises(re.error):
        ResultHandler(store, PreviewCollection(), NotificationChannel(store), preferred_source_pattern="[unclosed")


@pytest.mark.asyncio
async def test_publish_image_preview_item(store, handler):
    task = completed_task(media=("https://x.com/b.png", "https://theapi.app/a.png"))

    item = await handler.publish(task)

    assert item.id.startswith("virtual_tryon_p1_")
    assert item.product_id == "p1"
    assert item.task_id == task.id
    assert item.image_urls == ["https://theapi.app/a.png", "https://x.com/b.png"]
    assert item.is_video_preview is False
    assert task.result_media == item.image_urls
    assert handler.preview.items("u1") == [item]
    assert await handler.saved_results("u1", "p1") == item.image_urls

    notifications = await store.list_notifications("u1")
    assert len(notifications) == 1
    assert notifications[0]['event'] == 'ready'
    assert notifications[0]['image'] == "https://theapi.app/a.png"


@pytest.mark.asyncio
async def test_publish_video_preview_item(handler):
    task = completed_task(kind=TryOnKind.VIDEO, media=("https://x.com/v.mp4",))

    item = await handler.publish(task)

    assert item.id.startswith("personalized_video_p1_")
    assert item.is_video_preview is True
    assert item.video_urls == ["https://x.com/v.mp4"]
    assert item.image_urls == []
    assert "Video Preview" in item.name
    assert item.to_dict()['is_video_preview'] is True


@pytest.mark.asyncio
async def test_publish_exactly_once(store, handler):
    task = completed_task()

    first = await handler.publish(task)
    second = await handler.publish(task)

    assert first is second
    assert len(handler.preview) == 1
    assert len(await store.list_notifications("u1")) == 1


@pytest.mark.asyncio
async def test_publish_requires_completed(handler):
    task = completed_task()
    task.state = TaskState.FAILED

    with pytest.raises(ValueError):
        await handler.publish(task)
    assert len(handler.preview) == 0


@pytest.mark.asyncio
async def test_save_failure_does_not_block_publish(store, handler):
    store.fail_results = True
    store.fail_notifications = True
    task = completed_task()

    item = await handler.publish(task)

    assert handler.preview.get(item.id) is item
    assert await handler.saved_results("u1", "p1") == []


@pytest.mark.asyncio
async def test_saved_result_replaced_per_product(handler):
    await handler.publish(completed_task(media=("https://x.com/1.png",)))
    await handler.publish(completed_task(media=("https://x.com/2.png",)))

    assert await handler.saved_results("u1", "p1") == ["https://x.com/2.png"]


@pytest.mark.asyncio
async def test_notification_listeners_are_isolated(store):
    channel = NotificationChannel(store)
    received = []

    def broken(user_id, notification):
        raise RuntimeError("listener bug")

    channel.subscribe(broken)
    channel.subscribe(lambda user_id, notification: received.append(notification['title']))

    await channel.notify('started', 'u1', 'first', 'sub')
    await channel.notify('ready', 'u1', 'second', 'sub')

    assert received == ['first', 'second']
    titles = [n['title'] for n in await channel.for_user('u1')]
    assert titles == ['second', 'first']
