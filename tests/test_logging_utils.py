from loguru import logger

from forsure.utils.logging_utils import Timer, add_env_sinks, log_search, resolve_log_level


def test_resolve_log_level_prefers_explicit(monkeypatch):
    monkeypatch.setenv("LOG_LEVEL", "warning")
    assert resolve_log_level() == "WARNING"
    assert resolve_log_level("debug") == "DEBUG"

    monkeypatch.delenv("LOG_LEVEL")
    assert resolve_log_level() == "INFO"


def test_env_sinks_are_opt_in(monkeypatch, tmp_path):
    monkeypatch.delenv("LOG_DEBUG_FILE", raising=False)
    monkeypatch.delenv("LOG_JSON", raising=False)
    assert add_env_sinks(tmp_path) == []

    monkeypatch.setenv("LOG_JSON", "true")
    sink_ids = add_env_sinks(tmp_path / "json")
    try:
        assert len(sink_ids) == 1
        assert (tmp_path / "json").is_dir()
    finally:
        for sink_id in sink_ids:
            logger.remove(sink_id)


def test_log_search_binds_counts_and_context():
    records = []
    sink_id = logger.add(lambda message: records.append(message.record), level="INFO")
    try:
        log_search(source="network", kind="phone", results_raw=1, duration_ms=3.14159, business_id="b1")
    finally:
        logger.remove(sink_id)

    assert len(records) == 1
    extra = records[0]["extra"]
    assert extra["source"] == "network"
    assert extra["kind"] == "phone"
    assert extra["duration_ms"] == 3.1
    assert extra["business_id"] == "b1"
    assert "results_kept" not in extra
    assert records[0]["message"] == "search network/phone: 1 rows"


def test_timer_reports_elapsed_ms():
    with Timer() as timer:
        pass

    assert timer.elapsed_ms >= 0
