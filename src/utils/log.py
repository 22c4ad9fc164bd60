from loguru import logger
import sys
import os
from datetime import datetime

from src.definitions import LOGGING_FOLDER


def setup_logging(script_name: str, log_dir: str = LOGGING_FOLDER):
    """
    Configure Loguru for a script with stdout and dated file output.

    Usage:
        from loguru import logger
        from src.utils.log import setup_logging

        setup_logging("second_purchase")
        logger.info("This goes to both stdout and second_purchase_20241110.log")
    """
    # Ensure logs directory exists
    os.makedirs(log_dir, exist_ok=True)

    # Remove default handler
    logger.remove()

    # Add stdout handler
    logger.add(sys.stdout, level="INFO")

    # Add dated file handler
    today = datetime.now().strftime("%Y%m%d")
    log_file = os.path.join(log_dir, f"{script_name}_{today}.log")
    logger.add(log_file, level="DEBUG", rotation="1 day", retention="30 days")
    return logger
