import logging

import pytest

from auction_board.utils import logging_config

_LOGGER_NAMES = ("", "auction_board", "audit", "httpx", "uvicorn", "uvicorn.access", "uvicorn.error")


@pytest.fixture
def isolated_logging(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    saved = {}
    for name in _LOGGER_NAMES:
        target = logging.getLogger(name)
        saved[name] = (list(target.handlers), target.level, target.propagate)
    yield tmp_path
    for name, (handlers, level, propagate) in saved.items():
        target = logging.getLogger(name)
        for handler in target.handlers:
            if handler not in handlers:
                handler.close()
        target.handlers = handlers
        target.setLevel(level)
        target.propagate = propagate


def _handler_files(name):
    return sorted(
        getattr(handler, "baseFilename", "").rsplit("/", 1)[-1]
        for handler in logging.getLogger(name).handlers
        if hasattr(handler, "baseFilename")
    )


def test_api_logging_writes_app_and_error_files(isolated_logging):
    logging_config.setup_logging("warning")

    assert _handler_files("auction_board") == ["app.log", "error.log"]
    assert _handler_files("audit") == ["app.log"]
    assert logging.getLogger("auction_board").level == logging.WARNING
    assert logging.getLogger("auction_board").propagate is False


def test_board_logging_uses_its_own_file(isolated_logging):
    logging_config.setup_board_logging("debug")
    logging.getLogger("auction_board.services.board_runtime").info("Board ready")

    assert _handler_files("auction_board") == ["board.log"]
    assert logging.getLogger("auction_board").level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING
    for handler in logging.getLogger("auction_board").handlers:
        handler.flush()
    log_text = (isolated_logging / "logs" / "board.log").read_text(encoding="utf-8")
    assert "Board ready" in log_text
    assert not (isolated_logging / "logs" / "app.log").exists()


def test_stale_backups_are_pruned(isolated_logging, monkeypatch):
    monkeypatch.setenv("LOG_BACKUP_COUNT", "2")
    log_dir = isolated_logging / "logs"
    log_dir.mkdir()
    for index in range(1, 6):
        (log_dir / f"board.log.{index}").write_text("old", encoding="utf-8")

    logging_config.setup_board_logging()

    assert len(list(log_dir.glob("board.log.*"))) == 2
