"""
Tests for JSON log output and context injection.
"""

import json
import logging

from copallet.core.structured_logging import (
    SERVICE_NAME,
    actor_id_var,
    request_id_var,
    setup_logging,
)


def _read_lines(path):
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]


def test_json_lines_with_context(tmp_path):
    setup_logging(log_dir=str(tmp_path), log_file="test.jsonl")
    rid_token = request_id_var.set("req-abc")
    aid_token = actor_id_var.set("carrier-7")
    try:
        logging.getLogger("copallet.test").info(
            "Shipment %s published", "shp-1", extra={"shipment_id": "shp-1"}
        )
    finally:
        request_id_var.reset(rid_token)
        actor_id_var.reset(aid_token)

    for handler in logging.getLogger().handlers:
        handler.flush()

    entries = [e for e in _read_lines(tmp_path / "test.jsonl") if e.get("logger") == "copallet.test"]
    assert len(entries) == 1
    entry = entries[0]
    assert entry["event"] == "Shipment shp-1 published"
    assert entry["level"] == "info"
    assert entry["service"] == SERVICE_NAME
    assert entry["request_id"] == "req-abc"
    assert entry["actor_id"] == "carrier-7"
    assert entry["shipment_id"] == "shp-1"
    assert "ts" in entry


def test_unwritable_log_dir_falls_back_to_stderr(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("x")
    setup_logging(log_dir=str(blocker / "logs"))
    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert isinstance(handlers[0], logging.StreamHandler)
