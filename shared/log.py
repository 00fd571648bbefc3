"""
Severity-tagged logging for queue components.

Every queue component logs through four emitters, from least to most urgent:
debug, notice, warning, error. Each record carries the component category
and an optional structured data payload (exposed as ``record.category`` and
``record.data`` for formatters).

Usage:
    from shared.log import create_logger
    log_debug, log_notice, log_warn, log_error = create_logger("Walker")
    log_notice("Item added", {"callback": "app.handlers.doThing"})
"""

import logging

NOTICE = 25
logging.addLevelName(NOTICE, "NOTICE")

LOGGER_PREFIX = "Eventual"


def create_logger(category: str = ""):
    """Create severity log functions for a component.

    Args:
        category: Component name. If provided, records go to the
                  "Eventual.{category}" logger, otherwise to "Eventual".

    Returns:
        Tuple of (log_debug, log_notice, log_warn, log_error) functions,
        each taking (message, data=None).
    """
    name = f"{LOGGER_PREFIX}.{category}" if category else LOGGER_PREFIX
    logger = logging.getLogger(name)

    def _emit(level, msg, data):
        logger.log(level, msg, extra={"category": category or LOGGER_PREFIX, "data": data})

    def log_debug(msg, data=None): _emit(logging.DEBUG, msg, data)
    def log_notice(msg, data=None): _emit(NOTICE, msg, data)
    def log_warn(msg, data=None): _emit(logging.WARNING, msg, data)
    def log_error(msg, data=None): _emit(logging.ERROR, msg, data)

    return log_debug, log_notice, log_warn, log_error
