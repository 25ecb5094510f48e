"""
JSON storage implementation - data kept in JSON files
Atomic writes (temp+rename); each load-modify-save runs under a per-file
asyncio.Lock plus a filelock for other processes
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import aiofiles
from filelock import AsyncFileLock, Timeout

from tryon.models import utcnow_iso
from tryon.storage.base import BaseStorage

logger = logging.getLogger(__name__)


class JsonStorage(BaseStorage):
    """JSON storage implementation"""

    def __init__(self, data_dir: str = "./data"):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)

        # Files
        self.balances_file = self.data_dir / "user_balances.json"
        self.tasks_file = self.data_dir / "tryon_tasks.json"
        self.results_file = self.data_dir / "tryon_results.json"
        self.notifications_file = self.data_dir / "notifications.json"

        self._locks: Dict[Path, asyncio.Lock] = {}

        self._init_files()

    def _init_files(self):
        """Create the JSON files if missing"""
        for file in (self.balances_file, self.tasks_file, self.results_file, self.notifications_file):
            if not file.exists():
                try:
                    file.write_text("{}", encoding="utf-8")
                except OSError as e:
                    logger.error(f"Failed to create {file}: {e}")

    def _get_lock_file(self, file_path: Path) -> Path:
        """Path of the cross-process lock file"""
        return file_path.parent / f".{file_path.name}.lock"

    def _get_lock(self, file_path: Path) -> asyncio.Lock:
        lock = self._locks.get(file_path)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[file_path] = lock
        return lock

    async def _load_json(self, file_path: Path) -> Dict[str, Any]:
        """Load a JSON file"""
        try:
            async with aiofiles.open(file_path, "r", encoding="utf-8") as f:
                content = await f.read()
                if not content.strip():
                    return {}
                return json.loads(content)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError:
            logger.error(f"Invalid JSON in {file_path}, returning empty dict")
            return {}

    async def _save_json(self, file_path: Path, data: Dict[str, Any]) -> None:
        """Save a JSON file atomically (temp file + rename). Caller holds the file lock."""
        temp_file = file_path.with_suffix(".tmp")
        async with aiofiles.open(temp_file, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, ensure_ascii=False, indent=2))

        # Atomic rename
        temp_file.replace(file_path)

    async def _update_json(self, file_path: Path, mutate: Callable[[Dict[str, Any]], None]) -> None:
        """Load, mutate and save one file with no other writer in between"""
        try:
            async with self._get_lock(file_path):
                async with AsyncFileLock(self._get_lock_file(file_path), timeout=5):
                    data = await self._load_json(file_path)
                    mutate(data)
                    await self._save_json(file_path, data)
        except Timeout:
            logger.error(f"Timeout acquiring lock for {file_path}")
            raise
        except OSError as e:
            logger.error(f"Error saving {file_path}: {e}")
            raise

    # ==================== BALANCE OPERATIONS ====================

    async def read_balance(self, user_id: str) -> int:
        data = await self._load_json(self.balances_file)
        return int(data.get(str(user_id), 0))

    async def write_balance(self, user_id: str, new_balance: int) -> None:
        def mutate(data: Dict[str, Any]) -> None:
            data[str(user_id)] = int(new_balance)

        await self._update_json(self.balances_file, mutate)

    # ==================== TASK RECORDS ====================

    async def save_task_record(self, task_id: str, record: Dict[str, Any]) -> None:
        def mutate(data: Dict[str, Any]) -> None:
            data[task_id] = record

        await self._update_json(self.tasks_file, mutate)

    async def get_task_record(self, task_id: str) -> Optional[Dict[str, Any]]:
        data = await self._load_json(self.tasks_file)
        return data.get(task_id)

    # ==================== SAVED RESULTS ====================

    async def save_result(self, user_id: str, product_id: str, media: List[str]) -> None:
        entry = {
            "user_id": str(user_id),
            "product_id": str(product_id),
            "media": list(media),
            "updated_at": utcnow_iso(),
        }

        def mutate(data: Dict[str, Any]) -> None:
            data[f"{user_id}:{product_id}"] = entry

        await self._update_json(self.results_file, mutate)

    async def get_saved_result(self, user_id: str, product_id: str) -> Optional[Dict[str, Any]]:
        data = await self._load_json(self.results_file)
        return data.get(f"{user_id}:{product_id}")

    # ==================== NOTIFICATIONS ====================

    async def add_notification(self, user_id: str, notification: Dict[str, Any]) -> None:
        def mutate(data: Dict[str, Any]) -> None:
            data.setdefault(str(user_id), []).insert(0, notification)

        await self._update_json(self.notifications_file, mutate)

    async def list_notifications(self, user_id: str) -> List[Dict[str, Any]]:
        data = await self._load_json(self.notifications_file)
        return list(data.get(str(user_id), []))
