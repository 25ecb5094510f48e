"""
Invocation of user-supplied callbacks (sync or async).
"""
import inspect
import logging
from typing import Any, Callable, Optional


async def invoke_safely(callback: Optional[Callable[..., Any]], *args: Any,
                        logger: Optional[logging.Logger] = None, tag: str = "[CALLBACK]") -> None:
    """Call ``callback(*args)``, awaiting it if needed; errors are logged and dropped."""
    if callback is None:
        return
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception as e:
        (logger or logging.getLogger(__name__)).warning(f"{tag} callback failed: {e}", exc_info=True)
