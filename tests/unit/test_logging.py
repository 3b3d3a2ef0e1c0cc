import io
import json
import logging
from pathlib import Path

import pytest

from repodevkit.logging import ROOT_LOGGER, configure_logging, get_logger, parse_size


class TestParseSize:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("10M", 10 * 1024**2), ("1.5K", 1536), ("2GB", 2 * 1024**3), (2048, 2048), ("512", 512), (None, None)],
    )
    def test_sizes(self, value, expected) -> None:
        assert parse_size(value) == expected

    def test_garbage(self) -> None:
        assert parse_size("lots") is None


class TestConfigureLogging:
    def test_console_handler_and_module_levels(self) -> None:
        stream = io.StringIO()
        setup = configure_logging({"level": "INFO", "color": False, "module_levels": {"knife": "WARNING"}},
                                  stream=stream)
        try:
            get_logger("knife").info("hidden")
            get_logger("knife").warning("knife warning")
            get_logger("cleaner").info("shown")
        finally:
            setup.close()
        out = stream.getvalue()
        assert "hidden" not in out
        assert "[knife] knife warning" in out
        assert "[INFO] [cleaner] shown" in out
        assert "\033[" not in out

    def test_debug_flag_overrides_level(self) -> None:
        stream = io.StringIO()
        setup = configure_logging({"level": "ERROR"}, debug=True, stream=stream)
        try:
            get_logger("resolver").debug("deep detail")
        finally:
            setup.close()
        assert "deep detail" in stream.getvalue()

    def test_file_and_jsonl_handlers(self, tmp_path: Path) -> None:
        log_file = tmp_path / "logs" / "devkit.log"
        jsonl = tmp_path / "logs" / "devkit.jsonl"
        setup = configure_logging(
            {
                "level": "INFO",
                "file": str(log_file),
                "jsonl": {"enabled": True, "path": str(jsonl), "level": "INFO"},
            },
            stream=io.StringIO(),
        )
        try:
            get_logger("lister").info("found %s", "cat/a-1.0")
        finally:
            setup.close()
        assert "found cat/a-1.0" in log_file.read_text()
        records = [json.loads(line) for line in jsonl.read_text().splitlines()]
        assert {"level": "INFO", "module": "lister", "message": "found cat/a-1.0"}.items() <= records[-1].items()
        assert setup.jsonl_path == jsonl

    def test_close_restores_logger(self) -> None:
        root = logging.getLogger(ROOT_LOGGER)
        propagate = root.propagate
        setup = configure_logging({}, stream=io.StringIO())
        assert root.propagate is False
        assert setup.handlers
        setup.close()
        assert root.handlers == []
        assert root.propagate is propagate
