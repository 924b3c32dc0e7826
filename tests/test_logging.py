import json
import logging
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from worktimer.core.logging import JsonLogFormatter, TextLogFormatter
from worktimer.middlewares import principal_ctx_var, request_id_ctx_var


def _record(extra=None):
    record = logging.LogRecord("worktimer.timer", logging.INFO, __file__, 1, "timer.started", None, None)
    if extra is not None:
        record.extra_data = extra
    return record


def test_json_formatter_merges_context_and_extra():
    rid = request_id_ctx_var.set("req-1")
    principal = principal_ctx_var.set("open:dana@example.com")
    try:
        line = JsonLogFormatter().format(_record({"entity": "task:42", "entry_id": 7}))
    finally:
        request_id_ctx_var.reset(rid)
        principal_ctx_var.reset(principal)

    payload = json.loads(line)
    assert payload["message"] == "timer.started"
    assert payload["logger"] == "worktimer.timer"
    assert payload["request_id"] == "req-1"
    assert payload["principal"] == "open:dana@example.com"
    assert payload["entity"] == "task:42"
    assert payload["timestamp"].endswith("Z")


def test_text_formatter_appends_fields():
    line = TextLogFormatter().format(_record({"entity": "subtask:3"}))
    assert "timer.started" in line
    assert line.endswith("entity=subtask:3")


def test_formatters_without_context():
    payload = json.loads(JsonLogFormatter().format(_record()))
    assert "request_id" not in payload
    assert TextLogFormatter().format(_record()).endswith("timer.started")
