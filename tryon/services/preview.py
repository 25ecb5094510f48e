"""
"Your Preview" collection of personalized items.
"""
from typing import Dict, List, Optional

from tryon.models import PreviewItem


class PreviewCollection:

    def __init__(self):
        self._items: Dict[str, List[PreviewItem]] = {}
        self._by_id: Dict[str, PreviewItem] = {}

    async def append(self, item: PreviewItem) -> None:
        self._items.setdefault(item.user_id, []).append(item)
        self._by_id[item.id] = item

    def items(self, user_id: str) -> List[PreviewItem]:
        return list(self._items.get(user_id, []))

    def get(self, item_id: str) -> Optional[PreviewItem]:
        return self._by_id.get(item_id)

    def __len__(self) -> int:
        return len(self._by_id)
