"""
JSON storage tests: atomic writes, persistence across instances, concurrent writers.
"""

import asyncio
import json

import pytest

from tryon.payments.ledger import BalanceLedger
from tryon.storage.factory import create_storage
from tryon.storage.json_storage import JsonStorage
from tryon.storage.memory_storage import MemoryStorage


@pytest.mark.asyncio
async def test_balance_roundtrip_survives_new_instance(tmp_path):
    storage = JsonStorage(str(tmp_path))
    assert await storage.read_balance("u1") == 0

    await storage.write_balance("u1", 75)

    assert await JsonStorage(str(tmp_path)).read_balance("u1") == 75
    data = json.loads((tmp_path / "user_balances.json").read_text(encoding="utf-8"))
    assert data == {"u1": 75}
    assert not (tmp_path / "user_balances.tmp").exists()


@pytest.mark.asyncio
async def test_task_records_upsert(tmp_path):
    storage = JsonStorage(str(tmp_path))

    await storage.save_task_record("t1", {"state": "debited"})
    await storage.save_task_record("t1", {"state": "polling"})

    assert await storage.get_task_record("t1") == {"state": "polling"}
    assert await storage.get_task_record("missing") is None


@pytest.mark.asyncio
async def test_saved_results_and_notifications(tmp_path):
    storage = JsonStorage(str(tmp_path))

    await storage.save_result("u1", "p1", ["a", "b"])
    await storage.add_notification("u1", {"id": "n1"})
    await storage.add_notification("u1", {"id": "n2"})

    result = await storage.get_saved_result("u1", "p1")
    assert result["media"] == ["a", "b"]
    assert await storage.get_saved_result("u1", "p2") is None
    assert [n["id"] for n in await storage.list_notifications("u1")] == ["n2", "n1"]


@pytest.mark.asyncio
async def test_corrupted_file_reads_as_empty(tmp_path):
    storage = JsonStorage(str(tmp_path))
    (tmp_path / "user_balances.json").write_text("{not json", encoding="utf-8")

    assert await storage.read_balance("u1") == 0


def test_factory_modes(test_env, tmp_path):
    assert isinstance(create_storage("memory"), MemoryStorage)
    assert isinstance(create_storage("json", str(tmp_path)), JsonStorage)
    with pytest.raises(ValueError):
        create_storage("postgres")


@pytest.mark.asyncio
async def test_concurrent_debits_for_two_users(tmp_path):
    storage = JsonStorage(str(tmp_path))
    await storage.write_balance("u1", 100)
    await storage.write_balance("u2", 100)
    ledger = BalanceLedger(storage)

    balances = await asyncio.wait_for(
        asyncio.gather(ledger.debit("u1", 25), ledger.debit("u2", 25)),
        timeout=2,
    )

    assert balances == [75, 75]
    reopened = JsonStorage(str(tmp_path))
    assert await reopened.read_balance("u1") == 75
    assert await reopened.read_balance("u2") == 75


@pytest.mark.asyncio
async def test_concurrent_writes_lose_no_updates(tmp_path):
    storage = JsonStorage(str(tmp_path))

    await asyncio.wait_for(
        asyncio.gather(
            *(storage.write_balance(f"u{i}", i) for i in range(10)),
            *(storage.save_task_record(f"t{i}", {"state": "debited"}) for i in range(10)),
            *(storage.add_notification("u1", {"id": f"n{i}"}) for i in range(10)),
        ),
        timeout=5,
    )

    data = json.loads((tmp_path / "user_balances.json").read_text(encoding="utf-8"))
    assert data == {f"u{i}": i for i in range(10)}
    for i in range(10):
        assert await storage.get_task_record(f"t{i}") == {"state": "debited"}
    assert len(await storage.list_notifications("u1")) == 10
