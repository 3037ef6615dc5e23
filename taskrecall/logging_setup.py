# taskrecall/logging_setup.py

import logging
import sys
from pathlib import Path
from typing import Union


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep our own logs on the console, but only ERROR+ from third parties
    (chromadb, httpx, sentence_transformers are very chatty at INFO).
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith("taskrecall") or record.name == "__main__":
            return True
        return record.levelno >= logging.ERROR


def setup_logging(
    *,
    log_dir: Union[str, Path] = ".local/taskrecall",
    console_level: Union[int, str] = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Configure the root logger with a filtered console handler and a file
    handler that keeps everything. Call once, before the first log line.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # Remove pre-existing handlers to avoid duplicates on re-entry.
    for handler in list(root.handlers):
        root.removeHandler(handler)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = logging.FileHandler(str(log_dir / "taskrecall.log"), encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    logging.captureWarnings(True)
