"""Unit tests for the structured log helpers."""
import asyncio
import io
import json
import logging

import pytest

from observability import (
    MAX_LOGGED_TEXT_CHARS,
    JSONFormatter,
    current_run_id,
    log_event,
    log_model_output,
    plan_run,
)


def make_logger(name):
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JSONFormatter())
    logger = logging.getLogger(name)
    logger.handlers = [handler]
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger, stream


def records(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


@pytest.mark.priority_medium
@pytest.mark.unit
class TestStructuredLogging:
    """JSON records and run tagging."""

    def test_plan_run_tags_records(self):
        logger, stream = make_logger("test.observability.run")

        with plan_run(logger, "plan_generation", start_date="2026-10-14") as run_id:
            assert current_run_id() == run_id
            log_event(logger, "inside", day="2026-10-14")
        log_event(logger, "outside")

        logged = records(stream)
        assert [r["event"] for r in logged] == [
            "plan_generation started",
            "inside",
            "plan_generation completed",
            "outside",
        ]
        assert {r.get("run_id") for r in logged[:3]} == {run_id}
        assert "run_id" not in logged[3], "the run id is cleared after the block"
        assert logged[1]["day"] == "2026-10-14"
        assert logged[2]["start_date"] == "2026-10-14"
        assert logged[2]["duration_ms"] >= 0
        assert current_run_id() is None

    def test_run_id_reaches_gathered_tasks(self):
        logger, stream = make_logger("test.observability.fanout")

        async def day(n):
            await asyncio.sleep(0)
            log_event(logger, "day done", n=n)

        async def fan_out():
            with plan_run(logger, "fanout") as run_id:
                await asyncio.gather(day(1), day(2))
            return run_id

        run_id = asyncio.run(fan_out())

        day_records = [r for r in records(stream) if r["event"] == "day done"]
        assert sorted(r["n"] for r in day_records) == [1, 2]
        assert all(r["run_id"] == run_id for r in day_records)

    def test_failure_is_logged_and_reraised(self):
        logger, stream = make_logger("test.observability.failure")

        with pytest.raises(ValueError, match="boom"):
            with plan_run(logger, "plan_generation"):
                raise ValueError("boom")

        failed = records(stream)[-1]
        assert failed["event"] == "plan_generation failed"
        assert failed["level"] == "ERROR"
        assert failed["error_type"] == "ValueError"
        assert "Traceback" in failed["exception"]

    def test_long_model_output_is_truncated(self):
        logger, stream = make_logger("test.observability.output")

        log_model_output(logger, "raw_day", "x" * (MAX_LOGGED_TEXT_CHARS + 10))
        log_model_output(logger, "parsed_day", {"date": "2026-10-14"})

        long_record, short_record = records(stream)
        assert long_record["truncated"] is True
        assert long_record["chars"] == MAX_LOGGED_TEXT_CHARS + 10
        assert long_record["output"].endswith("(10 more chars)")
        assert short_record["truncated"] is False
        assert json.loads(short_record["output"]) == {"date": "2026-10-14"}
        assert short_record["level"] == "DEBUG"
