"""
User-facing copy for try-on outcomes and notifications.

No business logic, only copy.
"""
from typing import Any, Dict


COPY: Dict[str, str] = {
    # Outcomes
    "insufficient_funds": (
        "You need at least {cost} coins for {feature}. "
        "Please purchase more coins to continue."
    ),
    "invalid_request": "{feature} needs a profile photo and product media. Missing: {missing}.",
    "balance_update_failed": "Failed to update coin balance. Please try again.",
    "submission_failed": "Failed to start {feature}: {error}. Your coins have been refunded.",
    "provider_failed": "{feature} failed: {error}. Your coins have been refunded.",
    "timeout": (
        "{feature} is taking longer than expected. Processing can take up to "
        "{minutes} minutes. Your coins have been refunded, please try again later."
    ),
    "refund_failed": (
        "{feature} did not complete and we could not confirm your refund of {cost} coins. "
        "Please contact support with reference {task_id}."
    ),
    "completed": "Your {feature} result has been added to Your Preview.",
    "cancelled": "{feature} tracking stopped.",

    # Notifications
    "notify_started_title": "{feature} Started",
    "notify_started_subtitle": "Your {feature_lower} is being processed. This may take a few minutes.",
    "notify_ready_title": "{feature} Ready!",
    "notify_ready_subtitle": "Open Your Preview to view the results.",
    "notify_failed_title": "{feature} Failed",

    # Preview items
    "preview_image_description": "Virtual Try-On: {name} - See how it looks on you",
    "preview_video_name": "{name} (Video Preview)",
    "preview_video_description": "Personalized video of {name} with your face",
}

FEATURE_NAMES = {
    "image": "Virtual Try-On",
    "video": "Video Preview",
}


def feature_name(kind: Any) -> str:
    return FEATURE_NAMES.get(getattr(kind, "value", kind), "Virtual Try-On")


def t(key: str, **kwargs: Any) -> str:
    """
    Get text with safe formatting.

    Args:
        key: Copy key from COPY dictionary
        **kwargs: Format arguments

    Returns:
        Formatted string, or the raw template/key if formatting fails
    """
    text = COPY.get(key, key)
    try:
        return text.format(**kwargs)
    except (KeyError, ValueError, IndexError):
        return text
