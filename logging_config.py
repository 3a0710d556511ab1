# logging_config.py
import logging
import os
from logging.handlers import RotatingFileHandler
from dotenv import load_dotenv
load_dotenv()
# Use an environment variable for the log file, with a default
LOG_FILE = os.environ.get("LOG_FILE_PATH", "/tmp/spotitnow_challenges.log")
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

def setup_logging(level=logging.INFO):
    """Configures a rotating file logger for the entire application."""
    logger = logging.getLogger()

    # Avoid adding handlers multiple times
    if logger.hasHandlers() and any(isinstance(h, RotatingFileHandler) for h in logger.handlers):
        return

    logger.setLevel(level)

    # 10MB per file, keep last 5 files
    handler = RotatingFileHandler(LOG_FILE, maxBytes=10*1024*1024, backupCount=5)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
