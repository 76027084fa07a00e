"""
FILE DESCRIPTION: Foundational module for global configuration and logging.
KEY FUNCTIONS/CLASSES: setup_logger, CompanyFormatter, GridClientConfig, logger
"""

import logging
import os
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

# === CONFIGURATION SECTION ===

# Load .env at the beginning of core
load_dotenv(Path(__file__).resolve().parents[1] / '.env')


def _optional_number(name):
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return value


# Diff backend / rendering grid endpoints
SERVER_URL = os.getenv("GRID_SERVER_URL", "https://eyesapi.applitools.com")
API_KEY = os.getenv("GRID_API_KEY")

# Open-test concurrency (unset = unbounded) and the render throat multiplier
CONCURRENCY = _optional_number("GRID_CONCURRENCY")
RENDER_CONCURRENCY_FACTOR = int(os.getenv("GRID_RENDER_CONCURRENCY_FACTOR", 5))

# Render status polling (seconds)
RENDER_STATUS_INTERVAL = float(os.getenv("GRID_RENDER_STATUS_INTERVAL", 0.5))
RENDER_STATUS_TIMEOUT = float(os.getenv("GRID_RENDER_STATUS_TIMEOUT", 600))

# Resource fetching
FETCH_RESOURCE_TIMEOUT = float(os.getenv("GRID_FETCH_RESOURCE_TIMEOUT", 120))
FETCH_RETRIES = int(os.getenv("GRID_FETCH_RETRIES", 5))
FETCH_RETRY_DELAY = float(os.getenv("GRID_FETCH_RETRY_DELAY", 0.5))

USER_AGENT = os.getenv(
    "GRID_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36",
)

# Resources above this size are trimmed before hashing and upload
MAX_RESOURCE_SIZE = 15 * 1000000
TRIMMED_RESOURCE_SIZE = MAX_RESOURCE_SIZE - 100000


@dataclass
class GridClientConfig:
    """
    Every option the client recognizes. Optional fields stay None when the
    caller did not provide them.
    """
    api_key: Optional[str] = API_KEY
    server_url: str = SERVER_URL
    proxy: Optional[str] = None
    concurrency: Optional[float] = CONCURRENCY
    render_concurrency_factor: int = RENDER_CONCURRENCY_FACTOR
    render_status_interval: float = RENDER_STATUS_INTERVAL
    render_status_timeout: float = RENDER_STATUS_TIMEOUT
    fetch_resource_timeout: float = FETCH_RESOURCE_TIMEOUT
    fetch_retries: int = FETCH_RETRIES
    fetch_retry_delay: float = FETCH_RETRY_DELAY
    user_agent: Optional[str] = USER_AGENT
    is_disabled: bool = False
    dont_close_batches: bool = False

    def __post_init__(self):
        if self.concurrency is not None:
            try:
                self.concurrency = float(self.concurrency)
            except (TypeError, ValueError):
                raise ValueError("concurrency is not a number")

    @property
    def open_concurrency(self) -> Optional[int]:
        if self.concurrency is None or self.concurrency == float("inf"):
            return None
        return int(self.concurrency)

    @property
    def render_concurrency(self) -> Optional[int]:
        if self.open_concurrency is None:
            return None
        return self.open_concurrency * self.render_concurrency_factor


# === LOGGING SECTION ===

class CompanyFormatter(logging.Formatter):
    """
    FLOW: Receives a log record -> Extracts timestamp -> Formats according to company standard
    (e.g., [ Tue Jan 06 05:32:41 AM UTC 2026 ]) -> Prepends level and context -> Returns final string.
    """
    def format(self, record):
        dt = datetime.fromtimestamp(record.created)
        timestamp = dt.strftime("%a %b %d %I:%M:%S %p UTC %Y")
        context = getattr(record, 'context', 'root')
        message = f"[ {timestamp} ] : {record.levelname} : {context} : {record.getMessage()}"
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        return message


def setup_logger(name="gridclient", log_file=None, level=logging.INFO):
    """
    FLOW: Initializes/Retrieves logger -> Checks for existing handlers to prevent duplicates ->
    Sets propagation for child loggers -> Attaches Console and optional File handlers with CompanyFormatter.
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if logger.handlers:
        # Late file handler, e.g. requested from the CLI after import-time setup
        if log_file and not any(isinstance(h, logging.FileHandler) for h in logger.handlers):
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(CompanyFormatter())
            logger.addHandler(file_handler)
        return logger

    if name != "gridclient":
        logger.propagate = True
        setup_logger("gridclient", log_file=log_file, level=level)
        return logger

    formatter = CompanyFormatter()

    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # File handler (optional)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


# Global logger instance
logger = setup_logger(level=logging.DEBUG if os.getenv("GRID_VERBOSE") else logging.INFO)
