import json
import logging

from core.observability import JSONFormatter, setup_logging


def test_json_formatter_includes_dispatch_extras():
    record = logging.LogRecord("crud.dispatch", logging.WARNING, __file__, 1, "dispatch_failed address=%s", ("add_x",), None)
    record.entity = "x"
    record.operation = "add"

    payload = json.loads(JSONFormatter().format(record))

    assert payload["level"] == "WARNING"
    assert payload["logger"] == "crud.dispatch"
    assert payload["message"] == "dispatch_failed address=add_x"
    assert payload["entity"] == "x"
    assert payload["operation"] == "add"
    assert "address" not in payload


def test_setup_logging_does_not_stack_handlers():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    try:
        setup_logging("debug", "json")
        setup_logging("debug", "json")

        added = [h for h in root.handlers if h not in before]
        assert len(added) == 1
        assert isinstance(added[0].formatter, JSONFormatter)
        assert root.level == logging.DEBUG
    finally:
        for handler in [h for h in root.handlers if h not in before]:
            root.removeHandler(handler)
        root.setLevel(level)
