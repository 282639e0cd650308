# Author: evm-deployer developers

"""Structlog setup with categorised console and file output."""

from enum import Enum
import logging

import structlog
from structlog.typing import EventDict

from evm_deployer.log_categories import LogCategories

_default_level: int = logging.INFO
_category_width: int = max(len(cat.value) for cat in LogCategories)


def get_log_level(verbosity: int | None = None) -> int:
    """Maps the -v count to a logging level. No verbosity means the level
    that logging was last initialized with."""
    if not verbosity:
        return _default_level

    if verbosity >= 3:
        return logging.DEBUG
    elif verbosity == 2:
        return logging.INFO
    return logging.WARNING


def _add_category_field(
    logger: object, method_name: str, event_dict: EventDict
) -> EventDict:
    _ = logger, method_name
    event_dict.setdefault("category", LogCategories.NONE.value)
    return event_dict


def _render_prefix_category_to_event(
    logger: object, method_name: str, event_dict: EventDict
) -> EventDict:
    """Prefixes the category to the event text. The key itself is kept since
    CategoryFileHandler reads it, _filter_keys_processor drops it later."""
    _ = logger, method_name
    raw: Enum | str | None = event_dict.get("category")
    event = event_dict.get("event")
    if raw is not None and isinstance(event, str):
        category: str = raw.value if isinstance(raw, Enum) else raw
        event_dict["event"] = f"[ {category:<{_category_width}} ] {event}"
    return event_dict


def _filter_keys_processor(
    logger: object, method_name: str, event_dict: EventDict
) -> EventDict:
    _ = logger, method_name
    event_dict.pop("category", None)
    return event_dict


def init_logging(
    *,
    level: int,
    file_handlers: list[logging.Handler] | None = None,
) -> None:
    """Initializes structlog on top of the logging module.

    Args:
        * level: Minimum level of records that get printed.
        * file_handlers: Extra handlers that receive uncolored output."""
    global _default_level
    _default_level = level
    file_handlers = file_handlers or []

    structlog.reset_defaults()

    for noisy_lib in ("urllib3", "web3.providers", "web3.manager", "asyncio"):
        logging.getLogger(noisy_lib).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            _add_category_field,
            _render_prefix_category_to_event,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[_filter_keys_processor, structlog.dev.ConsoleRenderer()]
        )
    )

    plain_formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            _filter_keys_processor,
            structlog.dev.ConsoleRenderer(
                exception_formatter=structlog.dev.plain_traceback,
                colors=False,
            ),
        ]
    )
    for handler in file_handlers:
        handler.setFormatter(plain_formatter)

    logging.basicConfig(
        level=level,
        handlers=[console_handler, *file_handlers],
        force=True,
    )
