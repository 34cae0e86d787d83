"""Process-level tuning for long backup runs."""

import logging
import os

logger = logging.getLogger(__name__)


def lower_process_priority(niceness: int = 10) -> bool:
    """Lower this process's scheduling priority so backups yield to the server.

    Child processes (sqlcmd, dump tools) inherit the new priority.

    Args:
        niceness: Increment added to the current nice value

    Returns:
        True if the priority was changed
    """
    nice = getattr(os, "nice", None)
    if nice is None or niceness <= 0:
        return False
    try:
        nice(niceness)
    except OSError as e:
        logger.debug("Could not lower process priority: %s", e)
        return False
    logger.debug("Lowered process priority by %d", niceness)
    return True
