from __future__ import annotations

import logging

from synclink.utils.env import env_flag_any

DEBUG_ENV_VARS = ("SYNCLINK_CLIENT_DEBUG", "SYNCLINK_DEBUG")


def maybe_enable_debug_logger(logger: logging.Logger, *env_names: str) -> bool:
    """Attach a local DEBUG handler to ``logger`` when a debug env flag is set.

    Returns True when frame-level tracing should be emitted by the caller.
    """

    if not env_flag_any(*(env_names or DEBUG_ENV_VARS)):
        return False
    has_local = any(getattr(h, "_synclink_local", False) for h in logger.handlers)
    if not has_local:
        handler = logging.StreamHandler()
        fmt = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
        handler.setFormatter(logging.Formatter(fmt))
        handler.setLevel(logging.DEBUG)
        setattr(handler, "_synclink_local", True)
        logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return True
