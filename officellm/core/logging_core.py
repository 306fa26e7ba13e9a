"""Logging bridge.

Agents log through component names (``MANAGER``, ``WORKER:<name>``,
``STORE:<type>``) rather than module loggers, so one run reads as a single
causal story. Each component maps onto a child of the ``officellm`` logger.
"""

from __future__ import annotations

import logging
import os
from typing import Any

_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
_ROOT = "officellm"


def _resolve_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    return getattr(logging, str(level or "INFO").upper(), logging.INFO)


def configure_logging(level: str | int | None = None) -> None:
    """Configure root logging once; level defaults to ``OFFICELLM_LOG_LEVEL``."""
    logging.basicConfig(
        level=_resolve_level(level or os.getenv("OFFICELLM_LOG_LEVEL", "INFO")),
        format=_FORMAT,
    )


def component_logger(component: str) -> logging.Logger:
    """``WORKER:calc`` -> ``officellm.worker.calc``."""
    suffix = ".".join(part for part in component.lower().split(":") if part)
    return logging.getLogger(f"{_ROOT}.{suffix}" if suffix else _ROOT)


def set_component_level(component: str, level: str | int) -> None:
    component_logger(component).setLevel(_resolve_level(level))


def _format_message(message: str, args: tuple[Any, ...], meta: dict[str, Any] | None) -> str:
    if args:
        try:
            message = message % args
        except (TypeError, ValueError):
            message = f"{message} {' '.join(str(arg) for arg in args)}".strip()
    if meta:
        message = f"{message} | meta={meta}"
    return message


def log_debug(component: str, message: str, *args: Any, meta: dict[str, Any] | None = None) -> None:
    logger = component_logger(component)
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(_format_message(message, args, meta))


def log_info(component: str, message: str, *args: Any, meta: dict[str, Any] | None = None) -> None:
    component_logger(component).info(_format_message(message, args, meta))


def log_warning(component: str, message: str, *args: Any, meta: dict[str, Any] | None = None) -> None:
    component_logger(component).warning(_format_message(message, args, meta))


def log_error(component: str, message: str, *args: Any, meta: dict[str, Any] | None = None) -> None:
    component_logger(component).error(_format_message(message, args, meta))


def log_exception(component: str, message: str, *args: Any, meta: dict[str, Any] | None = None) -> None:
    component_logger(component).exception(_format_message(message, args, meta))
