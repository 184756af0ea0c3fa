import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
formatter = logging.Formatter(FORMAT)

# Logger parents configured by setup_logging()
LOGGER_PARENTS = ("modhub", "mpm")


def _file_handler(path: Path, level=logging.DEBUG) -> RotatingFileHandler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        path,
        maxBytes=10 * 1024 * 1024,  # 10 MB
        backupCount=5,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(formatter)
    return handler


def _console_handler(level=logging.DEBUG) -> logging.StreamHandler:
    handler = logging.StreamHandler()
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.set_name("modhub-console")
    return handler


def _attach(logger: logging.Logger, handler: logging.Handler) -> bool:
    for h in logger.handlers:
        if getattr(h, "baseFilename", None) is not None:
            if h.baseFilename == getattr(handler, "baseFilename", None):
                return False
        elif h.get_name() and h.get_name() == handler.get_name():
            return False
    logger.addHandler(handler)
    return True


def setup_logging(level: str | int = "INFO", log_file: str | Path | None = None) -> None:
    """
    Configure the modhub and mpm loggers.

    Safe to call more than once: handlers are only attached once per target.
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    console = _console_handler()
    file_handler = _file_handler(Path(log_file)) if log_file else None

    attached = False
    for name in LOGGER_PARENTS:
        parent = logging.getLogger(name)
        parent.setLevel(level)
        _attach(parent, console)
        if file_handler is not None:
            attached = _attach(parent, file_handler) or attached
        parent.propagate = False

    if file_handler is not None and not attached:
        file_handler.close()
