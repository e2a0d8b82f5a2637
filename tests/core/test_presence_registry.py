# tests/core/test_presence_registry.py
"""
Тесты для реестра соединений.
"""

from __future__ import annotations

import random
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from pydantic import ValidationError

from src.core.presence.registry import ConnectionRegistry
from src.shared.models.location import Location


def loc(lat: float, lon: float, accuracy: float | None = None) -> Location:
    return Location(latitude=lat, longitude=lon, accuracy=accuracy)


class FakeClock:
    """Управляемые часы для проверки устаревания."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestUpsert:
    """Тесты для upsert."""

    def test_insert_for_open_connection(self, registry: ConnectionRegistry) -> None:
        """Отчёт открытого соединения создаёт запись."""
        registry.open("a")

        assert registry.upsert("a", loc(10, 20)) is True

        entry = registry.get("a")
        assert entry is not None
        assert entry.location.latitude == 10
        assert entry.location.longitude == 20

    def test_last_write_wins(self, registry: ConnectionRegistry) -> None:
        """Второй отчёт полностью заменяет первый."""
        registry.open("a")
        registry.upsert("a", loc(10, 20, accuracy=5))
        registry.upsert("a", loc(11, 21))

        snapshot = registry.snapshot()
        assert len(snapshot) == 1
        assert snapshot.users[0].location == loc(11, 21)
        assert snapshot.users[0].location.accuracy is None

    def test_idempotent_for_identical_reports(self, registry: ConnectionRegistry) -> None:
        """Повтор одинакового отчёта не меняет содержимое снимка."""
        registry.open("a")
        registry.upsert("a", loc(10, 20))
        first = registry.snapshot()

        registry.upsert("a", loc(10, 20))
        second = registry.snapshot()

        assert [e.to_wire() for e in first.users] == [e.to_wire() for e in second.users]

    def test_out_of_range_values_stored_as_is(self, registry: ConnectionRegistry) -> None:
        """Диапазон координат не проверяется."""
        registry.open("a")
        assert registry.upsert("a", loc(123.0, -500.0)) is True
        assert registry.get("a").location.latitude == 123.0

    def test_unknown_connection_rejected(self, registry: ConnectionRegistry) -> None:
        """Отчёт от неоткрытого соединения не создаёт запись."""
        assert registry.upsert("ghost", loc(1, 2)) is False
        assert "ghost" not in registry
        assert registry.take_dirty() is False

    def test_report_after_remove_rejected(self, registry: ConnectionRegistry) -> None:
        """Запоздавший отчёт после отключения не создаёт призрачную запись."""
        registry.open("a")
        registry.upsert("a", loc(1, 2))
        registry.remove("a")

        assert registry.upsert("a", loc(3, 4)) is False
        assert len(registry) == 0

    def test_marks_dirty(self, registry: ConnectionRegistry) -> None:
        """Изменение требует рассылки."""
        registry.open("a")
        registry.upsert("a", loc(1, 2))

        assert registry.take_dirty() is True
        assert registry.take_dirty() is False

    def test_version_increments(self, registry: ConnectionRegistry) -> None:
        """Каждое принятое изменение увеличивает версию."""
        registry.open("a")
        v0 = registry.version
        registry.upsert("a", loc(1, 2))
        registry.upsert("a", loc(1, 3))

        assert registry.version == v0 + 2


class TestRemove:
    """Тесты для remove."""

    def test_remove_existing(self, registry: ConnectionRegistry) -> None:
        """Удаление существующей записи."""
        registry.open("a")
        registry.upsert("a", loc(1, 2))

        assert registry.remove("a") is True
        assert "a" not in registry
        assert registry.is_open("a") is False

    def test_remove_absent_is_noop(self, registry: ConnectionRegistry) -> None:
        """Удаление отсутствующего id — не ошибка."""
        assert registry.remove("missing") is False
        assert registry.take_dirty() is False

    def test_remove_idempotent(self, registry: ConnectionRegistry) -> None:
        """Двойное удаление эквивалентно одиночному."""
        registry.open("a")
        registry.open("b")
        registry.upsert("a", loc(1, 2))
        registry.upsert("b", loc(3, 4))

        registry.remove("a")
        after_once = registry.snapshot()
        registry.remove("a")
        after_twice = registry.snapshot()

        assert after_once.ids() == after_twice.ids() == {"b"}
        assert after_once.version == after_twice.version

    def test_remove_connection_without_location(self, registry: ConnectionRegistry) -> None:
        """Закрытие соединения без отчётов не меняет снимок."""
        registry.open("a")

        assert registry.remove("a") is False
        assert registry.is_open("a") is False
        assert registry.take_dirty() is False


class TestSnapshot:
    """Тесты для snapshot."""

    def test_open_without_report_not_in_snapshot(self, registry: ConnectionRegistry) -> None:
        """Соединение без отчёта не попадает в снимок."""
        registry.open("a")
        registry.open("b")
        registry.upsert("b", loc(1, 2))

        assert registry.snapshot().ids() == {"b"}
        assert registry.open_count == 2

    def test_snapshot_is_immutable_copy(self, registry: ConnectionRegistry) -> None:
        """Снимок не меняется при последующих изменениях реестра."""
        registry.open("a")
        registry.upsert("a", loc(1, 2))
        snapshot = registry.snapshot()

        registry.upsert("a", loc(5, 6))
        registry.remove("a")

        assert snapshot.get("a").location == loc(1, 2)
        with pytest.raises(ValidationError):
            snapshot.users[0].location.latitude = 99  # type: ignore[misc]

    def test_random_sequence_matches_last_write_wins(self) -> None:
        """Любая последовательность upsert/remove даёт LWW-состояние по каждому id."""
        rng = random.Random(42)
        registry = ConnectionRegistry()
        expected: dict[str, Location] = {}
        open_ids: set[str] = set()
        ids = [f"c{i}" for i in range(8)]

        for _ in range(500):
            cid = rng.choice(ids)
            op = rng.random()
            if op < 0.2:
                registry.open(cid)
                open_ids.add(cid)
            elif op < 0.8:
                location = loc(rng.uniform(-90, 90), rng.uniform(-180, 180))
                accepted = registry.upsert(cid, location)
                assert accepted == (cid in open_ids)
                if accepted:
                    expected[cid] = location
            else:
                registry.remove(cid)
                open_ids.discard(cid)
                expected.pop(cid, None)

        snapshot = registry.snapshot()
        assert {e.id: e.location for e in snapshot.users} == expected


class TestConcurrency:
    """Тесты конкурентного доступа."""

    def test_concurrent_upserts_for_distinct_ids(self) -> None:
        """Параллельные upsert разных id не теряют обновлений."""
        registry = ConnectionRegistry()
        ids = [f"c{i}" for i in range(64)]
        for cid in ids:
            registry.open(cid)

        def report(cid: str) -> None:
            for step in range(50):
                registry.upsert(cid, loc(step, ids.index(cid)))

        with ThreadPoolExecutor(max_workers=16) as pool:
            list(pool.map(report, ids))

        snapshot = registry.snapshot()
        assert snapshot.ids() == set(ids)
        for cid in ids:
            assert snapshot.get(cid).location == loc(49, ids.index(cid))
        assert registry.version == len(ids) * 50

    def test_snapshot_during_mutations_never_torn(self) -> None:
        """Снимок во время изменений содержит только целые записи."""
        registry = ConnectionRegistry()
        registry.open("a")
        stop = threading.Event()

        def writer() -> None:
            i = 0
            while not stop.is_set():
                # latitude и longitude всегда равны в одной записи
                registry.upsert("a", loc(i, i))
                i += 1

        thread = threading.Thread(target=writer)
        thread.start()
        try:
            for _ in range(1000):
                entry = registry.snapshot().get("a")
                if entry is not None:
                    assert entry.location.latitude == entry.location.longitude
        finally:
            stop.set()
            thread.join()


class TestStaleness:
    """Тесты для устаревания записей."""

    def test_stale_ids(self) -> None:
        """Записи старше max_age считаются устаревшими."""
        clock = FakeClock()
        registry = ConnectionRegistry(clock=clock)
        registry.open("old")
        registry.open("fresh")
        registry.upsert("old", loc(1, 1))
        clock.now += 100
        registry.upsert("fresh", loc(2, 2))
        clock.now += 10

        assert registry.stale_ids(max_age=60) == ["old"]

    def test_expire_keeps_connection_open(self) -> None:
        """После устаревания соединение остаётся открытым и может снова прислать отчёт."""
        clock = FakeClock()
        registry = ConnectionRegistry(clock=clock)
        registry.open("a")
        registry.upsert("a", loc(1, 1))
        registry.take_dirty()
        clock.now += 100

        assert registry.expire("a", max_age=60) is True
        assert "a" not in registry
        assert registry.is_open("a") is True
        assert registry.take_dirty() is True

        assert registry.upsert("a", loc(2, 2)) is True

    def test_expire_skips_refreshed_entry(self) -> None:
        """Запись, обновлённая после проверки, не удаляется."""
        clock = FakeClock()
        registry = ConnectionRegistry(clock=clock)
        registry.open("a")
        registry.upsert("a", loc(1, 1))
        clock.now += 100
        stale = registry.stale_ids(max_age=60)
        registry.upsert("a", loc(2, 2))

        assert stale == ["a"]
        assert registry.expire("a", max_age=60) is False
        assert registry.get("a").location == loc(2, 2)

    def test_clear(self, registry: ConnectionRegistry) -> None:
        """clear сбрасывает все соединения и записи."""
        registry.open("a")
        registry.upsert("a", loc(1, 1))

        registry.clear()

        assert len(registry) == 0
        assert registry.open_count == 0
