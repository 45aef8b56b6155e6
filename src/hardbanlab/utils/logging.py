"""Logging setup for the dashboard core.

Records go to ``~/.hardbanlab/logs/hardbanlab.log`` (or ``$HARDBANLAB_LOG_DIR``)
through a rotating file handler, plus stderr when ``console`` is set. The
generation client can log whole request payloads at DEBUG, so the configured
API key is registered with :func:`register_secret` and masked in every record.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path

from ..services.settings import redact_secret

__all__ = ["setup_logging", "get_log_path", "register_secret"]

_DEFAULT_LOG_DIR = Path.home() / ".hardbanlab" / "logs"
_LOG_FILE_NAME = "hardbanlab.log"
# Transport chatter from the HTTP gateway and the provider SDK
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio", "httpx", "httpcore", "openai")
_CONFIGURED = False
_LOG_PATH: Path | None = None


class _SecretMaskingFilter(logging.Filter):
    """Replaces registered secrets in the rendered message with their redacted form."""

    def __init__(self) -> None:
        super().__init__()
        self.secrets: set[str] = set()

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True
        try:
            message = record.getMessage()
        except (TypeError, ValueError):
            # Left for the handler to report through handleError
            return True
        masked = message
        for secret in self.secrets:
            masked = masked.replace(secret, redact_secret(secret))
        if masked != message:
            record.msg = masked
            record.args = None
        return True


_SECRET_FILTER = _SecretMaskingFilter()


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Install the file and console handlers on the root logger.

    Only the first call takes effect unless ``force`` is set, which is how
    ``debug_logging`` from the settings file re-levels an already running
    process. Returns the log file path.
    """

    global _CONFIGURED, _LOG_PATH
    if _CONFIGURED and not force and _LOG_PATH is not None:
        return _LOG_PATH

    target_dir = _resolve_log_dir(log_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / _LOG_FILE_NAME

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers: list[logging.Handler] = [
        logging.handlers.RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
    ]
    if console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        handler.addFilter(_SECRET_FILTER)

    logging.basicConfig(level=level, handlers=handlers, force=True)
    logging.captureWarnings(True)
    _quiet_transport_loggers(level)

    _CONFIGURED = True
    _LOG_PATH = log_path
    return log_path


def register_secret(value: str | None) -> None:
    """Mask ``value`` in every record written by the configured handlers."""

    secret = (value or "").strip()
    # Very short values would mask ordinary words
    if len(secret) > 4:
        _SECRET_FILTER.secrets.add(secret)


def get_log_path() -> Path | None:
    return _LOG_PATH


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    env_override = os.environ.get("HARDBANLAB_LOG_DIR")
    return Path(log_dir or env_override or _DEFAULT_LOG_DIR).expanduser()


def _quiet_transport_loggers(root_level: int) -> None:
    quiet_level = max(root_level, logging.WARNING)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)
