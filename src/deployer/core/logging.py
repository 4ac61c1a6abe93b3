"""
deployer.core.logging - Structured Logging Setup
==================================================

Every module logs through ``structlog.get_logger()`` and binds its own
context (``component=...``). This module wires structlog onto stdlib
logging once, at process start:

    >>> from deployer.core.config import load_config
    >>> from deployer.core.logging import configure_logging
    >>> configure_logging(load_config())

During a deployment run the executor binds ``target_id`` and
``deployment_id`` as context variables, so every log line emitted by any
processor carries them without the processor knowing about it.
"""

from __future__ import annotations

import logging
import sys

import structlog

from deployer.core.config import DeployerConfig


def configure_logging(config: DeployerConfig) -> None:
    """Configure stdlib logging and structlog from the deployer config."""
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if config.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
