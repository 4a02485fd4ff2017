import logging
import os
from datetime import datetime
from typing import Iterable, Optional

from core.config import settings

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Stage decisions of the stabilizer are logged at DEBUG
VERBOSE_LOGGERS = ('models.anthropometry',)

def setup_logging(log_dir: Optional[str] = None, level: int = logging.INFO,
                  verbose_loggers: Iterable[str] = VERBOSE_LOGGERS):
    """
    Configure the root logger with a dated log file and the console.

    Args:
        log_dir: Directory for log files, settings.LOG_DIR if None
        level: Root logging level
        verbose_loggers: Loggers raised to DEBUG
    """
    log_dir = log_dir or settings.LOG_DIR
    os.makedirs(log_dir, exist_ok=True)

    today = datetime.now().strftime("%Y-%m-%d")
    log_file = os.path.join(log_dir, f"sensum_{today}.log")

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )

    for name in verbose_loggers:
        logging.getLogger(name).setLevel(logging.DEBUG)

    return logging.getLogger(__name__)
