# Author: evm-deployer developers

"""File handlers that split the structured log stream into several files."""

from enum import Enum
from pathlib import Path
import logging
import re

from typing_extensions import override

from evm_deployer.log_categories import LogCategories

_ANSI_ESCAPE = re.compile(r"\x1b\[[0-9;]*m")


class StripColorsFilter(logging.Filter):
    """Removes terminal color codes so that log files stay readable."""

    @override
    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = _ANSI_ESCAPE.sub("", record.msg)
        if isinstance(record.args, tuple):
            record.args = tuple(
                _ANSI_ESCAPE.sub("", arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
        return True


def record_category(record: logging.LogRecord) -> str:
    """Reads the category that structlog attached to a record, either as an
    attribute or inside the wrapped event dict."""
    category: str | Enum | None = getattr(record, "category", None)
    if category is None and isinstance(record.msg, dict):
        category = record.msg.get("category")
    if isinstance(category, Enum):
        category = category.value
    return category or LogCategories.NONE.value


class CategoryFileHandler(logging.Handler):
    """Writes each log category to `<base_path>-<CATEGORY>.log`. Records in
    the ALL category are copied to every file that is already open."""

    def __init__(
        self,
        base_path: Path,
        append: bool = False,
        skip_uncategorized: bool = False,
    ) -> None:
        super().__init__()
        self.base_path: Path = base_path
        self.mode: str = "a" if append else "w"
        self.skip_uncategorized: bool = skip_uncategorized
        self.handlers: dict[str, logging.FileHandler] = {}
        self.addFilter(StripColorsFilter())

    def _handler_for(self, category: str) -> logging.FileHandler:
        handler: logging.FileHandler | None = self.handlers.get(category)
        if handler is None:
            handler = logging.FileHandler(
                f"{self.base_path}-{category}.log", mode=self.mode
            )
            handler.setFormatter(self.formatter)
            self.handlers[category] = handler
        return handler

    @override
    def emit(self, record: logging.LogRecord) -> None:
        category: str = record_category(record)

        if category == LogCategories.NONE.value and self.skip_uncategorized:
            return

        if category == LogCategories.ALL.value:
            for handler in self.handlers.values():
                handler.emit(record)
            return

        self._handler_for(category).emit(record)

    @override
    def close(self) -> None:
        for handler in self.handlers.values():
            handler.close()
        super().close()
