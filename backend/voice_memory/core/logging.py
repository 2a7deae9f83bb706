from __future__ import annotations

import logging
from typing import Any

from voice_memory.core.security import redact_secrets


class RedactionFilter(logging.Filter):
    """Log filter that redacts provider credentials before output."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_secrets(str(record.msg))
        if record.args:
            if isinstance(record.args, dict):
                record.args = {key: _redact_arg(value) for key, value in record.args.items()}
            else:
                record.args = tuple(_redact_arg(arg) for arg in record.args)
        return True


def setup_logging(level: str) -> None:
    """Configure service logging with credential redaction."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    root = logging.getLogger()
    # Logger filters skip records propagated from child loggers; handler filters do not.
    for target in [root, *root.handlers]:
        if not any(isinstance(item, RedactionFilter) for item in target.filters):
            target.addFilter(RedactionFilter())


def _redact_arg(value: Any) -> Any:
    # Numeric args must stay numeric for %d / %.2f placeholders.
    if isinstance(value, str):
        return redact_secrets(value)
    return value
