import json
from concurrent.futures import ThreadPoolExecutor

from kidrewards.ops import HealthMonitor, StructuredLogger


def test_logger_keeps_only_recent_entries(tmp_path) -> None:
    logger = StructuredLogger(path=tmp_path / "events.jsonl", keep=3)
    for index in range(5):
        logger.log("task_completed", task_id=index)

    assert [entry["task_id"] for entry in logger.tail()] == [2, 3, 4]
    assert len(logger.events("task_completed")) == 3
    assert len((tmp_path / "events.jsonl").read_text().splitlines()) == 5


def test_logger_writes_whole_lines_from_many_threads(tmp_path) -> None:
    path = tmp_path / "logs" / "events.jsonl"
    logger = StructuredLogger(path=path, keep=50)
    padding = "x" * 2048

    def emit(worker: int) -> None:
        for index in range(50):
            logger.log("reward_redeemed", worker=worker, index=index, note=padding)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(emit, range(8)))

    lines = path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 400
    records = [json.loads(line) for line in lines]
    assert {(record["worker"], record["index"]) for record in records} == {
        (worker, index) for worker in range(8) for index in range(50)
    }
    assert len(logger.tail(limit=1000)) == 50


def test_health_reports_database_reachability(engine) -> None:
    monitor = HealthMonitor(engine)

    assert monitor.status() == {"status": "ok", "database": "ok"}
    assert monitor.last_checked is not None
