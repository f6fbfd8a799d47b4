import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
import os
import sys

# --- 1. PATHS ---

# Logs live under the working directory unless LOG_DIR points elsewhere.
LOG_DIR = Path(os.getenv("LOG_DIR", Path(os.getcwd()) / "logs"))

try:
    LOG_DIR.mkdir(exist_ok=True, parents=True)
except OSError as e:
    # Logging isn't set up yet, so report on stderr directly.
    print(f"ERROR: Could not create log directory at {LOG_DIR}: {e}", file=sys.stderr)

LOG_FILE = LOG_DIR / "attendance.log"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


# --- 2. ROOT LOGGER FOR THE PACKAGE ---

logger = logging.getLogger("ai_attendance")
logger.setLevel(LOG_LEVEL)


# --- 3. HANDLERS ---

formatter = logging.Formatter(
    "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
)

if not logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if LOG_DIR.exists():
        # Rotates at 5MB
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Child logger of the package logger, e.g. get_logger(__name__)."""
    if name == logger.name or name.startswith(logger.name + "."):
        return logging.getLogger(name)
    return logger.getChild(name)
