import asyncio
import json
from datetime import datetime, timedelta, timezone

from starlette.requests import Request

from agnivirya.services.visitor_storage import FileVisitorStorage, MemoryVisitorStorage
from agnivirya.services.visitor_tracker import VisitorTracker, normalize_client_ip


def make_request(headers=None, host="5.6.7.8", path="/", method="GET"):
    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "root_path": "",
        "scheme": "http",
        "query_string": b"",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": (host, 50000) if host is not None else None,
        "server": ("testserver", 80),
    }
    return Request(scope)


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def test_normalize_prefers_forwarded_headers():
    assert normalize_client_ip(make_request({"X-Forwarded-For": "9.9.9.9, 10.0.0.1"})) == "9.9.9.9"
    assert normalize_client_ip(make_request({"X-Real-IP": "8.8.4.4"})) == "8.8.4.4"
    assert normalize_client_ip(make_request({"CF-Connecting-IP": "1.0.0.1"})) == "1.0.0.1"
    assert normalize_client_ip(make_request({"X-Real-IP": "8.8.4.4", "X-Forwarded-For": "9.9.9.9"})) == "9.9.9.9"
    assert normalize_client_ip(make_request()) == "5.6.7.8"


def test_normalize_strips_ipv4_mapped_prefix():
    assert normalize_client_ip(make_request(host="::ffff:203.0.113.7")) == "203.0.113.7"


def test_loopback_gets_fresh_synthetic_id():
    first = normalize_client_ip(make_request(host="127.0.0.1"))
    second = normalize_client_ip(make_request(host="::1"))
    third = normalize_client_ip(make_request(host=None))

    for ip in (first, second, third):
        assert ip.startswith("local_")
    assert len({first, second, third}) == 3


def test_repeated_visits_accumulate_on_one_visitor():
    tracker = VisitorTracker(MemoryVisitorStorage())
    for _ in range(5):
        result = tracker.track_visit(make_request(host="5.6.7.8"))

    assert len(tracker.visitors) == 1
    visitor = tracker.visitors["5.6.7.8"]
    assert visitor.total_visits == 5
    assert len(visitor.visits) == 5
    assert visitor.last_visit == visitor.visits[-1].timestamp
    assert result.visit_count == 5
    assert result.is_new_visitor is False
    assert tracker.stats.total_visits == 5
    assert tracker.stats.unique_visitors == 1


def test_visit_records_request_details():
    tracker = VisitorTracker(MemoryVisitorStorage(), environment="production", platform="serverless")
    tracker.track_visit(make_request({"User-Agent": "pytest", "Accept-Language": "hi"}, path="/download"))

    visit = tracker.visitors["5.6.7.8"].visits[0]
    assert visit.path == "/download"
    assert visit.user_agent == "pytest"
    assert visit.referer == "direct"
    assert visit.headers["accept-language"] == "hi"
    assert visit.environment == "production"
    assert visit.platform == "serverless"


def test_rollups_respect_time_windows():
    now = datetime.now(timezone.utc)
    clock = FakeClock(now - timedelta(hours=30))
    tracker = VisitorTracker(MemoryVisitorStorage(), clock=clock)

    tracker.track_visit(make_request(host="1.1.1.1"))
    clock.now = now
    tracker.track_visit(make_request(host="1.1.1.1"))
    tracker.track_visit(make_request(host="2.2.2.2"))

    stats = tracker.get_stats()
    assert stats["overall"] == {
        "totalVisits": 3,
        "uniqueVisitors": 2,
        "lastReset": stats["overall"]["lastReset"],
    }
    assert stats["last24Hours"] == {"visits": 2, "uniqueVisitors": 2}
    assert stats["today"]["visits"] <= stats["overall"]["totalVisits"]
    assert stats["today"]["visits"] == 2


def test_visitors_sorted_by_last_visit_with_recent_visits():
    now = datetime.now(timezone.utc)
    clock = FakeClock(now - timedelta(minutes=10))
    tracker = VisitorTracker(MemoryVisitorStorage(), clock=clock)

    for i in range(7):
        tracker.track_visit(make_request(host="1.1.1.1", path=f"/p{i}"))
    clock.now = now
    tracker.track_visit(make_request(host="2.2.2.2"))

    page = tracker.get_visitors(limit=50, offset=0)
    assert [v.ip for v in page.visitors] == ["2.2.2.2", "1.1.1.1"]
    older = page.visitors[1]
    assert older.total_visits == 7
    assert [v["path"] for v in older.recent_visits] == ["/p2", "/p3", "/p4", "/p5", "/p6"]
    assert page.pagination.has_more is False


def test_reset_clears_everything():
    tracker = VisitorTracker(MemoryVisitorStorage())
    tracker.track_visit(make_request())
    previous_reset = tracker.stats.last_reset

    tracker.reset_data()

    assert tracker.visitors == {}
    assert tracker.stats.total_visits == 0
    assert tracker.stats.unique_visitors == 0
    assert tracker.stats.last_reset >= previous_reset


def test_file_round_trip(tmp_path):
    path = tmp_path / "data" / "visitors.json"
    tracker = VisitorTracker(FileVisitorStorage(path))
    tracker.track_visit(make_request(host="1.1.1.1"))
    tracker.track_visit(make_request(host="1.1.1.1"))
    tracker.track_visit(make_request(host="2.2.2.2"))
    assert tracker.save() is True

    saved = json.loads(path.read_text())
    assert [ip for ip, _ in saved["visitors"]] == ["1.1.1.1", "2.2.2.2"]
    assert saved["stats"]["totalVisits"] == 3
    assert "lastUpdated" in saved

    reloaded = VisitorTracker(FileVisitorStorage(path))
    assert set(reloaded.visitors) == {"1.1.1.1", "2.2.2.2"}
    assert reloaded.visitors["1.1.1.1"].total_visits == 2
    assert reloaded.stats.total_visits == 3
    assert reloaded.stats.unique_visitors == 2
    assert reloaded.stats.last_reset == tracker.stats.last_reset
    assert reloaded.get_stats()["overall"] == tracker.get_stats()["overall"]


def test_missing_file_creates_fresh_store(tmp_path):
    path = tmp_path / "visitors.json"
    VisitorTracker(FileVisitorStorage(path))

    saved = json.loads(path.read_text())
    assert saved["visitors"] == []
    assert saved["stats"]["totalVisits"] == 0


def test_corrupt_file_starts_empty(tmp_path):
    path = tmp_path / "visitors.json"
    path.write_text("{not json")

    tracker = VisitorTracker(FileVisitorStorage(path))
    assert tracker.visitors == {}
    tracker.track_visit(make_request())
    assert tracker.stats.total_visits == 1


def test_failed_save_does_not_break_tracking(tmp_path):
    # El path apunta a un directorio: load y save fallan
    storage = FileVisitorStorage(tmp_path)
    tracker = VisitorTracker(storage)

    result = tracker.track_visit(make_request())
    assert result.total_visits == 1
    assert tracker.save() is False


def test_close_writes_pending_saves(tmp_path):
    path = tmp_path / "visitors.json"

    async def scenario():
        tracker = VisitorTracker(FileVisitorStorage(path))
        tracker.start_autosave(3600)
        tracker.track_visit(make_request(host="1.1.1.1"))
        tracker.track_visit(make_request(host="2.2.2.2"))
        await tracker.aclose()

    asyncio.run(scenario())

    saved = json.loads(path.read_text())
    assert saved["stats"]["totalVisits"] == 2
    assert len(saved["visitors"]) == 2


class CountingStorage(FileVisitorStorage):
    def __init__(self, path):
        super().__init__(path)
        self.saved_totals = []

    def save(self, snapshot):
        self.saved_totals.append(snapshot["stats"]["totalVisits"])
        return super().save(snapshot)


def test_burst_of_visits_is_saved_once_after_debounce(tmp_path):
    storage = CountingStorage(tmp_path / "visitors.json")

    async def scenario():
        tracker = VisitorTracker(storage, save_debounce_seconds=0.05)
        storage.saved_totals.clear()
        for i in range(20):
            tracker.track_visit(make_request(host=f"1.1.1.{i}"))
        # Nada se escribe durante la ráfaga
        assert storage.saved_totals == []
        await asyncio.sleep(0.2)
        await tracker.flush()
        saved = list(storage.saved_totals)
        await tracker.aclose()
        return saved

    assert asyncio.run(scenario()) == [20]


def test_flush_writes_pending_debounced_save(tmp_path):
    path = tmp_path / "visitors.json"

    async def scenario():
        tracker = VisitorTracker(FileVisitorStorage(path), save_debounce_seconds=3600)
        tracker.track_visit(make_request(host="1.1.1.1"))
        await tracker.flush()
        saved = json.loads(path.read_text())
        await tracker.aclose()
        return saved

    assert asyncio.run(scenario())["stats"]["totalVisits"] == 1


def test_data_file_info(tmp_path):
    path = tmp_path / "visitors.json"
    tracker = VisitorTracker(FileVisitorStorage(path))

    info = tracker.get_data_file_info()
    assert info["path"] == str(path)
    assert info["exists"] is True
    assert info["size"] > 0
    assert info["visitorsInMemory"] == 0
