from __future__ import annotations

import logging
import sys
from pathlib import Path

import pytest

from slm_app.core.logging import level_from_name, setup_logging, shorten
from slm_app.core.system import RebootRunner


def test_reboot_command_success() -> None:
    RebootRunner([sys.executable, "-c", "pass"]).reboot()


def test_reboot_command_failures() -> None:
    with pytest.raises(RuntimeError, match="exited with 3"):
        RebootRunner([sys.executable, "-c", "import sys; sys.exit(3)"]).reboot()
    with pytest.raises(RuntimeError, match="missing command"):
        RebootRunner(["slm-app-no-such-binary"]).reboot()
    with pytest.raises(RuntimeError, match="timeout"):
        RebootRunner([sys.executable, "-c", "import time; time.sleep(5)"], timeout_s=0.2).reboot()


def test_level_from_name() -> None:
    assert level_from_name("DEBUG") == logging.DEBUG
    assert level_from_name("bogus") == logging.INFO


def test_shorten_payload() -> None:
    assert shorten(b"abc") == "abc"
    assert shorten(b"\xffabcdef", limit=3) == "\ufffdab... (7 bytes)"


def test_setup_logging_is_idempotent(tmp_path: Path) -> None:
    logger = logging.getLogger("slm_app")
    saved = list(logger.handlers), logger.level
    try:
        setup_logging(str(tmp_path / "logs"), logging.DEBUG)
        setup_logging(str(tmp_path / "logs"), logging.DEBUG)
        assert len(logger.handlers) == len(saved[0]) + 2
        assert logger.level == logging.DEBUG
        logger.info("hello")
        for handler in logger.handlers:
            handler.flush()
        assert "hello" in (tmp_path / "logs" / "slm_app.log").read_text(encoding="utf-8")
    finally:
        for handler in logger.handlers[:]:
            if handler not in saved[0]:
                logger.removeHandler(handler)
                handler.close()
        logger.setLevel(saved[1])
