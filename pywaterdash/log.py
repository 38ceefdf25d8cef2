"""Logging setup shared by the dashboard modules."""
import logging
import logging.handlers
import os
import sys

FORMAT = '%(asctime)s - %(levelname)s - %(message)s'

_configured = False


def setup_logging(log_dir: str = 'logs') -> None:
    """Attach file and stdout handlers to the waterdash loggers.

    Safe to call more than once; handlers are only added the first time.
    """
    global _configured
    if _configured:
        return

    os.makedirs(log_dir, exist_ok=True)
    formatter = logging.Formatter(FORMAT)

    # Configure main logger
    main_logger = logging.getLogger('waterdash.main')
    main_logger.setLevel(logging.INFO)
    main_handler = logging.FileHandler(os.path.join(log_dir, 'main.log'))
    main_handler.setFormatter(formatter)
    main_logger.addHandler(main_handler)

    # Add stdout handler to main logger
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    main_logger.addHandler(stdout_handler)

    # Configure debug logger
    debug_logger = logging.getLogger('waterdash.debug')
    debug_logger.setLevel(logging.DEBUG)
    debug_handler = logging.FileHandler(os.path.join(log_dir, 'debug.log'))
    debug_handler.setFormatter(formatter)
    debug_logger.addHandler(debug_handler)

    # Configure warning logger
    warning_logger = logging.getLogger('waterdash.warning')
    warning_logger.setLevel(logging.WARNING)
    warning_handler = logging.FileHandler(os.path.join(log_dir, 'warning.log'))
    warning_handler.setFormatter(formatter)
    warning_logger.addHandler(warning_handler)

    _configured = True
