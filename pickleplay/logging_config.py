"""Logging for the pickleplay client and the apps that embed it."""

import logging
import sys
from pathlib import Path
from typing import Optional, TextIO

LOGGER_NAME = 'pickleplay'

# Modules that log every request or store write stay quiet unless asked
DEFAULT_MODULE_LEVELS = {
    'pickleplay.backend': logging.WARNING,
    'pickleplay.local_store': logging.WARNING,
    'pickleplay.utils': logging.WARNING,
}


def get_logger(name: str = LOGGER_NAME) -> logging.Logger:
    """
    Get a logger under the ``pickleplay`` namespace.

    Args:
        name: Module ``__name__`` or a short name such as ``'games'``

    Returns:
        Logger instance
    """
    if name != LOGGER_NAME and not name.startswith(LOGGER_NAME + '.'):
        name = f'{LOGGER_NAME}.{name}'
    return logging.getLogger(name)


def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[Path | str] = None,
    module_levels: Optional[dict[str, int]] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Attach handlers to the client's loggers.

    The client installs only a NullHandler on import, so nothing is printed
    until the embedding app calls this. Console output is always on; a file
    is written only when ``log_file`` is given.

    Args:
        level: Level for the ``pickleplay`` logger (default: INFO)
        log_file: Optional file that receives detailed records
        module_levels: Per-module levels, merged over DEFAULT_MODULE_LEVELS.
            Keys may be short names (``'backend'``) or full logger names.
        stream: Console stream (default: stdout)

    Returns:
        The ``pickleplay`` logger

    Example:
        from pickleplay.logging_config import setup_logging
        setup_logging(logging.DEBUG, module_levels={'backend': logging.DEBUG})
    """
    logger = get_logger()
    logger.setLevel(level)
    logger.propagate = False

    for handler in logger.handlers:
        handler.close()
    logger.handlers = []

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setFormatter(logging.Formatter('%(levelname)s %(name)s: %(message)s'))
    logger.addHandler(console_handler)

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))
        logger.addHandler(file_handler)

    # Defaults never make a module noisier than the package level
    levels = {name: max(default, level) for name, default in DEFAULT_MODULE_LEVELS.items()}
    for name, module_level in (module_levels or {}).items():
        levels[get_logger(name).name] = module_level
    for name, module_level in levels.items():
        logging.getLogger(name).setLevel(module_level)

    return logger
