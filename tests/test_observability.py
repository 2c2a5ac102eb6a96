"""Run-id propagation and log formatting."""

import json
import logging

import pytest

from observability.logging import JsonFormatter, RunIdFilter, clear_run, run_id_var, setup_logging, start_run
from observability.tracing import trace_operation


@pytest.fixture(autouse=True)
def reset_run():
    yield
    clear_run()


def make_record(msg="Cache rebuilt | category=%s", args=("tech",), level=logging.INFO):
    return logging.LogRecord("keeper", level, "keeper.py", 10, msg, args, None)


def test_start_run_sets_prefixed_id():
    run_id = start_run("keeper")
    assert run_id.startswith("keeper-")
    assert run_id_var.get() == run_id


def test_filter_stamps_run_id():
    run_id = start_run("ingest")
    record = make_record()
    assert RunIdFilter().filter(record) is True
    assert record.run_id == run_id


def test_json_formatter():
    start_run("summarize")
    record = make_record(level=logging.WARNING)
    RunIdFilter().filter(record)
    record.category = "tech"
    data = json.loads(JsonFormatter().format(record))
    assert data["message"] == "Cache rebuilt | category=tech"
    assert data["run_id"].startswith("summarize-")
    assert data["source"] == "keeper.py:10"
    assert data["category"] == "tech"


def test_setup_logging_writes_file(config):
    assert setup_logging(config) is True
    logging.getLogger("test").info("Hello | key=%s", "value")
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "Hello | key=value" in (config.log_dir / "quickbrew.log").read_text()
    for handler in logging.getLogger().handlers[:]:
        handler.close()
        logging.getLogger().removeHandler(handler)


def test_trace_operation_without_logfire():
    with trace_operation("keeper_run", {"categories": 6}) as attrs:
        attrs["aborted"] = 0
    assert attrs == {"aborted": 0}
