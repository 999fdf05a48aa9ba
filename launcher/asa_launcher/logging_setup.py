from __future__ import annotations
import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional
from .settings import Settings

class _JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": self.formatTime(record, datefmt="%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)

def setup_logging(settings: Settings, *, log_dir: Optional[Path] = None) -> None:
    level = settings.log_level.upper()
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    fmt = _JsonFormatter() if settings.log_json else logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    ch = logging.StreamHandler(sys.stdout)
    ch.setFormatter(fmt)
    root.addHandler(ch)

    logs_dir = log_dir or settings.resolved_log_dir()
    try:
        logs_dir.mkdir(parents=True, exist_ok=True)
        launcher_fh = RotatingFileHandler(logs_dir / "launcher.log", maxBytes=5_000_000, backupCount=3,
                                          encoding="utf-8")
    except OSError:
        # console logging keeps working without the file
        root.warning("Could not open launcher log in %s, continuing with console logging only.", logs_dir)
        return
    launcher_fh.setFormatter(fmt)
    launcher_fh.setLevel(level)
    launcher = logging.getLogger("asa.launcher")
    for h in list(launcher.handlers):
        if isinstance(h, RotatingFileHandler):
            launcher.removeHandler(h)
            h.close()
    launcher.addHandler(launcher_fh)
    launcher.propagate = True

def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
