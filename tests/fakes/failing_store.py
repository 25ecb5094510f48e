"""
MemoryStorage with switchable write failures
"""

from tryon.storage.memory_storage import MemoryStorage


class FailingStore(MemoryStorage):
    """Fails balance writes (or reads) on demand."""

    def __init__(self, balances=None):
        super().__init__(balances)
        self.fail_writes = False
        self.fail_reads = False
        self.fail_task_records = False
        self.fail_results = False
        self.fail_notifications = False
        self.writes = []

    async def read_balance(self, user_id):
        if self.fail_reads:
            raise OSError("balance store unavailable")
        return await super().read_balance(user_id)

    async def write_balance(self, user_id, new_balance):
        if self.fail_writes:
            raise OSError("balance store unavailable")
        self.writes.append((user_id, new_balance))
        await super().write_balance(user_id, new_balance)

    async def save_task_record(self, task_id, record):
        if self.fail_task_records:
            raise OSError("task store unavailable")
        await super().save_task_record(task_id, record)

    async def save_result(self, user_id, product_id, media):
        if self.fail_results:
            raise OSError("results store unavailable")
        await super().save_result(user_id, product_id, media)

    async def add_notification(self, user_id, notification):
        if self.fail_notifications:
            raise OSError("notification store unavailable")
        await super().add_notification(user_id, notification)
