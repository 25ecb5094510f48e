"""
Fixed per-kind prices for try-on tasks, in coins.

Prices come from configuration (TRYON_IMAGE_COST / TRYON_VIDEO_COST);
both default to 25.
"""
from typing import Any, Optional

from tryon.config import get_settings


def cost_for(kind: Any, settings: Optional[Any] = None) -> int:
    """
    Price of one try-on task of the given kind.

    Args:
        kind: TryOnKind or its string value ("image" / "video")
        settings: Settings instance (global settings if None)

    Returns:
        Positive integer cost in coins
    """
    settings = settings or get_settings()
    value = getattr(kind, "value", kind)
    if value == "video":
        return settings.video_cost
    if value == "image":
        return settings.image_cost
    raise ValueError(f"Unknown try-on kind: {kind}")
