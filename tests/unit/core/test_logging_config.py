"""Unit tests for logging helpers."""

from __future__ import annotations

from core.constants import SENSITIVE_PARAM_MARKERS
from core.logging_config import get_logger, mask_sensitive_params


def test_mask_sensitive_params_hides_secret_values() -> None:
    """Secret-looking keys should be masked while others are kept."""
    params = {"catalog": "local", "db.password": "hunter2", "API_TOKEN": "abc", "port": 5432}

    masked = mask_sensitive_params(params, SENSITIVE_PARAM_MARKERS)

    assert masked == {
        "catalog": "local",
        "db.password": "***",
        "API_TOKEN": "***",
        "port": "5432",
    }


def test_logger_writes_json_events_to_stderr(capsys) -> None:
    """Log events should go to stderr and leave stdout untouched."""
    get_logger("tests.logging").info("probe_event", type_name="points")

    captured = capsys.readouterr()

    assert captured.out == "" and '"event": "probe_event"' in captured.err
