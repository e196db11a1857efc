"""Logging setup with secret redaction.

Two formats:
- console: human-readable lines on stderr (stdout is reserved for results)
- jsonl: one JSON object per line, written under the artifacts directory

Both formats mask GitHub tokens, bearer credentials and API keys before a
record leaves the process.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Literal

REDACTED = "***REDACTED***"

DEFAULT_SENSITIVE_KEYS = (
    "token",
    "api_key",
    "apikey",
    "password",
    "secret",
    "authorization",
    "auth_header",
    "private_key",
    "cookie",
)

DEFAULT_SECRET_PATTERNS = (
    # GitHub classic tokens (personal, OAuth, user-to-server, server, refresh)
    r"\bgh[pousr]_[A-Za-z0-9]{36,}\b",
    # GitHub fine-grained personal access tokens
    r"\bgithub_pat_[A-Za-z0-9_]{22,}\b",
    # Authorization header credentials
    r"(?i)\b(?:bearer|token|basic)\s+[A-Za-z0-9\-._~+/]{16,}=*",
    # key=value / key: value pairs for API keys and secrets
    r"(?i)\b(?:api[_-]?key|secret|password|access[_-]?token)\b\s*[:=]\s*[\"']?[^\s\"',;]+",
)


@dataclass
class RedactionConfig:
    """What to mask in log output."""

    sensitive_keys: tuple[str, ...] = DEFAULT_SENSITIVE_KEYS
    patterns: tuple[str, ...] = DEFAULT_SECRET_PATTERNS
    _compiled: list[re.Pattern[str]] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._compiled = [re.compile(p) for p in self.patterns]

    def should_redact_key(self, key: str) -> bool:
        lowered = key.lower()
        return any(
            lowered == k or lowered.endswith(f"_{k}") or lowered.startswith(f"{k}_")
            for k in self.sensitive_keys
        )

    def redact_value(self, value: str) -> str:
        for pattern in self._compiled:
            value = pattern.sub(REDACTED, value)
        return value

    def redact_mapping(self, data: dict[str, Any]) -> dict[str, Any]:
        redacted: dict[str, Any] = {}
        for key, value in data.items():
            if self.should_redact_key(key):
                redacted[key] = REDACTED
            elif isinstance(value, dict):
                redacted[key] = self.redact_mapping(value)
            elif isinstance(value, str):
                redacted[key] = self.redact_value(value)
            else:
                redacted[key] = value
        return redacted


class RedactingFormatter(logging.Formatter):
    """Formatter that masks secrets in the rendered message."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        redaction: RedactionConfig | None = None,
    ) -> None:
        super().__init__(fmt, datefmt)
        self.redaction = redaction or RedactionConfig()

    def format(self, record: logging.LogRecord) -> str:
        return self.redaction.redact_value(super().format(record))


class JsonlHandler(logging.Handler):
    """Appends one JSON object per record to a file."""

    def __init__(self, log_file: Path, redaction: RedactionConfig | None = None) -> None:
        super().__init__()
        self.log_file = Path(log_file)
        self.log_file.parent.mkdir(parents=True, exist_ok=True)
        self.redaction = redaction or RedactionConfig()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            entry: dict[str, Any] = {
                "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
                "level": record.levelname,
                "logger": record.name,
                "message": self.redaction.redact_value(record.getMessage()),
                "module": record.module,
                "function": record.funcName,
                "line": record.lineno,
            }
            if record.exc_info:
                entry["exception"] = self.redaction.redact_value(
                    logging.Formatter().formatException(record.exc_info)
                )
            extra = getattr(record, "context", None)
            if isinstance(extra, dict):
                entry["context"] = self.redaction.redact_mapping(extra)

            with self.log_file.open("a", encoding="utf-8") as f:
                f.write(json.dumps(entry, default=str) + "\n")
        except Exception:
            self.handleError(record)


@dataclass
class LoggingConfig:
    format: Literal["console", "jsonl"] = "console"
    level: str = "INFO"
    artifacts_dir: Path = Path("run_artifacts")
    log_file: Path | None = None


CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(config: LoggingConfig) -> Path | None:
    """Configure the root logger.

    Replaces any existing root handlers so repeated calls do not duplicate
    output.

    Returns:
        Path of the JSONL log file, or None for console logging.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(getattr(logging, config.level.upper(), logging.INFO))

    if config.format == "jsonl":
        log_file = config.log_file
        if log_file is None:
            stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
            log_file = Path(config.artifacts_dir) / "logs" / f"run_{stamp}.log.jsonl"
        root.addHandler(JsonlHandler(log_file))
        return log_file

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(RedactingFormatter(CONSOLE_FORMAT))
    root.addHandler(handler)
    return None
