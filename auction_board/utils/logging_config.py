import logging
import logging.config
import os
from pathlib import Path
from typing import Any, Dict, Iterable

LOG_DIR = Path("logs")
_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _prune_backups(log_dir: Path, base_name: str, backup_count: int) -> None:
    if backup_count < 1:
        return
    candidates: Iterable[Path] = sorted(
        log_dir.glob(f"{base_name}.*"),
        key=lambda path: path.stat().st_mtime,
        reverse=True,
    )
    for stale in list(candidates)[backup_count:]:
        try:
            stale.unlink()
        except OSError:
            continue


def _rotation_limits() -> Dict[str, int]:
    return {
        "maxBytes": int(os.getenv("LOG_MAX_BYTES", str(5 * 1024 * 1024))),
        "backupCount": int(os.getenv("LOG_BACKUP_COUNT", "3")),
    }


def _file_handler(filename: str, level: str, limits: Dict[str, int]) -> Dict[str, Any]:
    _prune_backups(LOG_DIR, filename, limits["backupCount"])
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "formatter": "default",
        "filename": str(LOG_DIR / filename),
        "level": level,
        "encoding": "utf8",
        **limits,
    }


def _configure(handlers: Dict[str, Dict[str, Any]], loggers: Dict[str, Dict[str, Any]]) -> None:
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": {"format": _FORMAT}},
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                    "level": "INFO",
                },
                **handlers,
            },
            "loggers": loggers,
        }
    )


def setup_logging(level: str = "DEBUG") -> None:
    """
    Configures logging for the configuration store API.
    Logs are written to 'logs/app.log' and 'logs/error.log'; mutating
    requests are recorded by the 'audit' logger.
    """
    LOG_DIR.mkdir(exist_ok=True)
    limits = _rotation_limits()
    everything = ["console", "file_app", "file_error"]
    _configure(
        handlers={
            "file_app": _file_handler("app.log", "INFO", limits),
            "file_error": _file_handler("error.log", "ERROR", limits),
        },
        loggers={
            "": {"handlers": everything, "level": "INFO"},
            "uvicorn": {"handlers": ["console", "file_app"], "level": "INFO", "propagate": False},
            "uvicorn.access": {"handlers": ["console", "file_app"], "level": "INFO", "propagate": False},
            "uvicorn.error": {"handlers": ["console", "file_error"], "level": "INFO", "propagate": False},
            "audit": {"handlers": ["console", "file_app"], "level": "INFO", "propagate": False},
            "auction_board": {"handlers": everything, "level": level.upper(), "propagate": False},
        },
    )
    logging.info("Logging configured successfully.")


def setup_board_logging(level: str = "INFO") -> None:
    """
    Configures logging for the board poller process.

    Board output goes to 'logs/board.log' so it never interleaves with the
    API service's files when both run from the same directory. httpx request
    lines are kept at WARNING; a poll every few seconds would drown the log.
    """
    LOG_DIR.mkdir(exist_ok=True)
    limits = _rotation_limits()
    handlers = ["console", "file_board"]
    _configure(
        handlers={"file_board": _file_handler("board.log", "DEBUG", limits)},
        loggers={
            "": {"handlers": handlers, "level": "WARNING"},
            "httpx": {"handlers": handlers, "level": "WARNING", "propagate": False},
            "auction_board": {"handlers": handlers, "level": level.upper(), "propagate": False},
        },
    )
    logging.getLogger("auction_board").debug("Board logging configured.")
