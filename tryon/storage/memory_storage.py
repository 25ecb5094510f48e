"""
In-memory storage implementation - for tests and dev mode
"""

import copy
from typing import Any, Dict, List, Optional

from tryon.models import utcnow_iso
from tryon.storage.base import BaseStorage


class MemoryStorage(BaseStorage):
    """Storage in process memory"""

    def __init__(self, balances: Optional[Dict[str, int]] = None):
        self._balances: Dict[str, int] = dict(balances or {})
        self._tasks: Dict[str, Dict[str, Any]] = {}
        self._results: Dict[str, Dict[str, Any]] = {}
        self._notifications: Dict[str, List[Dict[str, Any]]] = {}

    async def read_balance(self, user_id: str) -> int:
        return int(self._balances.get(str(user_id), 0))

    async def write_balance(self, user_id: str, new_balance: int) -> None:
        self._balances[str(user_id)] = int(new_balance)

    async def save_task_record(self, task_id: str, record: Dict[str, Any]) -> None:
        self._tasks[task_id] = copy.deepcopy(record)

    async def get_task_record(self, task_id: str) -> Optional[Dict[str, Any]]:
        record = self._tasks.get(task_id)
        return copy.deepcopy(record) if record is not None else None

    async def save_result(self, user_id: str, product_id: str, media: List[str]) -> None:
        self._results[f"{user_id}:{product_id}"] = {
            "user_id": str(user_id),
            "product_id": str(product_id),
            "media": list(media),
            "updated_at": utcnow_iso(),
        }

    async def get_saved_result(self, user_id: str, product_id: str) -> Optional[Dict[str, Any]]:
        result = self._results.get(f"{user_id}:{product_id}")
        return copy.deepcopy(result) if result is not None else None

    async def add_notification(self, user_id: str, notification: Dict[str, Any]) -> None:
        self._notifications.setdefault(str(user_id), []).insert(0, dict(notification))

    async def list_notifications(self, user_id: str) -> List[Dict[str, Any]]:
        return [dict(n) for n in self._notifications.get(str(user_id), [])]
