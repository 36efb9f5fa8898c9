import json
from pathlib import Path

import pytest

from agent.telemetry import Telemetry
from agent.config import TelemetryConfig


def test_telemetry_records_events(tmp_path: Path):
    config = TelemetryConfig(
        enabled=True,
        log_dir=str(tmp_path),
        otel_enabled=False,
        otel_endpoint=None,
        otel_service_name="geogebra-tutor",
    )
    telemetry = Telemetry(config, session_id="sess123")

    telemetry.record_llm_call(
        model="gpt-4",
        prompt_tokens=10,
        completion_tokens=20,
        latency_ms=123.4,
    )
    telemetry.record_tool_call(
        tool_name="geogebra_create_point",
        args={"name": "A", "x": 1, "y": 2},
        duration_ms=1.5,
        command="A = (1, 2)",
    )
    telemetry.record_iteration(iteration=1, decision="tools", duration_ms=200.0)
    telemetry.finalize("answer")

    summary = telemetry.summary()
    assert summary.total_iterations == 1
    assert summary.outcome == "answer"
    assert summary.tool_calls[0].command == "A = (1, 2)"

    log_path = tmp_path / "sess123.jsonl"
    assert log_path.exists()
    lines = log_path.read_text().strip().splitlines()
    assert len(lines) == 4
    events = [json.loads(line)["event"] for line in lines]
    assert events == ["llm_call", "tool_call", "loop_iteration", "session_summary"]


def test_telemetry_disabled_no_log(tmp_path: Path):
    config = TelemetryConfig(enabled=False, log_dir=str(tmp_path))
    telemetry = Telemetry(config, session_id="sess456")
    telemetry.record_llm_call(
        model="gpt-4",
        prompt_tokens=1,
        completion_tokens=1,
        latency_ms=1.0,
    )
    log_path = tmp_path / "sess456.jsonl"
    assert not log_path.exists()
    assert telemetry.summary().llm_calls == []


def test_session_id_cannot_leave_log_dir(tmp_path: Path):
    config = TelemetryConfig(enabled=True, log_dir=str(tmp_path / "metrics"))
    with pytest.raises(ValueError):
        Telemetry(config, session_id="../../escaped")
    assert not (tmp_path / "escaped.jsonl").exists()
