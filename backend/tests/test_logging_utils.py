from __future__ import annotations

import json
import logging

from roadwatch import logging_utils


def test_log_event_attaches_fields(monkeypatch, caplog) -> None:  # noqa: ANN001
    monkeypatch.setattr(logging_utils, "LOGGER", logging.getLogger("roadwatch_test_events"))

    with caplog.at_level(logging.INFO, logger="roadwatch_test_events"):
        logging_utils.log_event("traffic_poll_stored", status="HAS_LIVE_DATA", speed_mph=31.2)
        logging_utils.log_event("signal_unavailable", level=logging.WARNING, signal="routing")

    first, second = caplog.records
    assert first.getMessage() == "traffic_poll_stored"
    assert first.event == "traffic_poll_stored"  # type: ignore[attr-defined]
    assert first.speed_mph == 31.2  # type: ignore[attr-defined]
    assert second.levelno == logging.WARNING
    assert second.signal == "routing"  # type: ignore[attr-defined]


def test_log_dir_falls_back_when_out_dir_unwritable(tmp_path) -> None:  # noqa: ANN001
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x", encoding="utf-8")

    log_dir = logging_utils._resolve_log_dir(str(blocker))

    assert log_dir is not None
    assert log_dir != blocker / "logs"


def test_parse_level() -> None:
    assert logging_utils._parse_level("debug") == logging.DEBUG
    assert logging_utils._parse_level("nonsense") == logging.INFO


def test_configure_logging_writes_json_lines(tmp_path, monkeypatch) -> None:  # noqa: ANN001
    monkeypatch.setattr(logging_utils, "LOGGER", None)

    logger = logging_utils.configure_logging(level="DEBUG", out_dir=str(tmp_path))
    logging_utils.log_event("route_check", status="ROUTING_THROUGH", distance_ratio=1.01)

    assert logger.level == logging.DEBUG
    assert logging_utils.LOGGER is logger
    lines = (tmp_path / "logs" / logging_utils.LOG_FILE_NAME).read_text(encoding="utf-8").splitlines()
    record = json.loads(lines[-1])
    assert record["event"] == "route_check"
    assert record["level"] == "INFO"
    assert record["logger"] == "roadwatch"
    assert record["distance_ratio"] == 1.01
    assert "ts" in record
