import logging
import os
import sys
from datetime import datetime

_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logger(log_dir: str = ".instruction_context/logs", level: str = "INFO",
                 console: bool = False) -> logging.Logger:
    """Creates a file logger for the ``instruction_context`` package.

    The file handler captures everything at DEBUG; the optional console
    handler (stderr) uses *level*.  Calling it twice does not stack
    handlers.
    """
    logger = logging.getLogger("instruction_context")
    logger.setLevel(logging.DEBUG)

    for handler in list(logger.handlers):
        if getattr(handler, "_instruction_context", False):
            logger.removeHandler(handler)
            handler.close()

    os.makedirs(log_dir, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = os.path.join(log_dir, f"context_{timestamp}.log")

    # File handler: captures everything
    fh = logging.FileHandler(log_file, encoding="utf-8")
    fh.setLevel(logging.DEBUG)
    fh.setFormatter(logging.Formatter(_FORMAT, datefmt="%H:%M:%S"))
    fh._instruction_context = True
    logger.addHandler(fh)

    if console:
        ch = logging.StreamHandler(sys.stderr)
        ch.setLevel(getattr(logging, level.upper(), logging.INFO))
        ch.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        ch._instruction_context = True
        logger.addHandler(ch)

    return logger
