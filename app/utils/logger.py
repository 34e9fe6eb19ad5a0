# app/utils/logger.py
import logging
from pathlib import Path

from app.config import settings

# Create logs directory if it doesn't exist
LOGS_DIR = Path(settings.LOG_DIR)
LOGS_DIR.mkdir(parents=True, exist_ok=True)

# Log file path
LOG_FILE = LOGS_DIR / "auto_sell_agent.log"

# Custom formatter
formatter = logging.Formatter(
    "%(asctime)s [%(levelname)s]: %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
)

# File handler
file_handler = logging.FileHandler(LOG_FILE, encoding="utf-8")
file_handler.setFormatter(formatter)

# Stream handler
stream_handler = logging.StreamHandler()
stream_handler.setFormatter(formatter)

# Configure logger once; reloads must not stack handlers
logger = logging.getLogger("auto_sell_agent")
logger.setLevel(logging.INFO)
if not logger.handlers:
    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)
