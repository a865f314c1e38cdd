"""Tests for logging formatters, lazy adapter and dictConfig builder."""

from __future__ import annotations

import json
import logging
import sys

import pytest

from nestedset.core.settings import LoggingSettings
from nestedset.infra.logging import (
    JSONFormatter,
    LazyLoggerAdapter,
    build_logging_config,
    get_lazy_logger,
)
from nestedset.infra.logging import config as logging_config


def make_record(msg="Node moved %s", args=(7,), **extra):
    logger = logging.getLogger("nestedset.test")
    return logger.makeRecord(
        "nestedset.test", logging.INFO, __file__, 10, msg, args, None, extra=extra
    )


@pytest.mark.unit
class TestJSONFormatter:
    def test_default_keys(self):
        payload = json.loads(JSONFormatter().format(make_record()))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "nestedset.test"
        assert payload["message"] == "Node moved 7"
        assert payload["timestamp"].endswith("Z")

    def test_extras_and_static_fields(self):
        formatter = JSONFormatter(static={"service": "trees"})

        payload = json.loads(formatter.format(make_record(node_id=7, root_id=1)))

        assert payload["node_id"] == 7
        assert payload["root_id"] == 1
        assert payload["service"] == "trees"
        assert "args" not in payload
        assert "pathname" not in payload

    def test_exception_is_single_line(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.getLogger("nestedset.test").makeRecord(
                "nestedset.test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )

        line = JSONFormatter().format(record)

        assert "\n" not in line
        assert "ValueError: boom" in json.loads(line)["exception"]

    def test_non_serializable_extra_uses_str(self):
        class Node:
            def __str__(self):
                return "Node(7)"

        payload = json.loads(JSONFormatter().format(make_record(node=Node())))

        assert payload["node"] == "Node(7)"


@pytest.mark.unit
class TestLazyLogging:
    def test_callable_not_evaluated_when_disabled(self):
        base = logging.getLogger("nestedset.test.lazy.off")
        base.setLevel(logging.WARNING)
        adapter = LazyLoggerAdapter(base, {})

        def explode():
            raise AssertionError("evaluated")

        adapter.debug(explode)
        adapter.debug("value %s", explode)

    def test_callables_evaluated_when_enabled(self, caplog):
        caplog.set_level(logging.DEBUG, logger="nestedset.test.lazy.on")
        adapter = get_lazy_logger("nestedset.test.lazy.on")

        adapter.debug(lambda: "shift_values delta=2")
        adapter.info("moved %s rows", lambda: 3)

        assert [r.getMessage() for r in caplog.records] == [
            "shift_values delta=2",
            "moved 3 rows",
        ]

    def test_context_is_bound(self):
        adapter = get_lazy_logger("nestedset.test", model="Category")

        assert adapter.extra == {"model": "Category"}


@pytest.mark.unit
class TestLoggingConfig:
    def test_json_config(self):
        config = build_logging_config(
            log_level="debug",
            json_logs=True,
            console_enabled=True,
            include_function_name=True,
            service_name="trees",
        )

        formatter = config["formatters"]["default"]
        assert formatter["()"] == "nestedset.infra.logging.formatters.JSONFormatter"
        assert formatter["fmt_keys"]["function"] == "funcName"
        assert formatter["static"] == {"service": "trees"}
        assert config["root"] == {"level": "DEBUG", "handlers": ["console"]}
        assert config["handlers"]["console"]["stream"] == "ext://sys.stderr"

    def test_text_config_without_console(self):
        config = build_logging_config(
            log_level="INFO",
            json_logs=False,
            console_enabled=False,
            include_function_name=False,
            service_name="trees",
        )

        assert "%(funcName)s" not in config["formatters"]["default"]["format"]
        assert config["handlers"] == {}
        assert config["root"]["handlers"] == []

    def test_setup_logging_runs_once(self, monkeypatch):
        calls = []
        monkeypatch.setattr(logging_config, "_LOGGING_INITIALIZED", False)
        monkeypatch.setattr(logging_config, "configure_logging", lambda **kw: calls.append(kw))
        settings = LoggingSettings(level="ERROR", json_logs=False)

        logging_config.setup_logging(settings)
        logging_config.setup_logging(settings)
        logging_config.setup_logging(settings, force=True, log_level="DEBUG")

        assert len(calls) == 2
        assert calls[0]["log_level"] == "ERROR"
        assert calls[0]["json_logs"] is False
        assert calls[1]["log_level"] == "DEBUG"
