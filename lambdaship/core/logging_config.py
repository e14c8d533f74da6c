"""
Logging Configuration

Provides:
- setup_logging: YAML dictConfig (with ${VAR} substitution) or basicConfig
- SecretRedactingFilter: masks credential values in every log record
"""

import logging
import logging.config
import os
import string

import yaml

REDACTED = "****"


class SecretRedactingFilter(logging.Filter):
    """Replaces registered secret values in log messages."""

    def __init__(self, secrets=None):
        super().__init__()
        self._secrets = set()
        for secret in secrets or ():
            self.add(secret)

    def add(self, secret):
        if secret:
            self._secrets.add(str(secret))

    def redact(self, text: str) -> str:
        for secret in self._secrets:
            text = text.replace(secret, REDACTED)
        return text

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        message = record.getMessage()
        redacted = self.redact(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


_redactor = SecretRedactingFilter()


def get_redactor() -> SecretRedactingFilter:
    return _redactor


def register_secrets(*secrets):
    for secret in secrets:
        _redactor.add(secret)


def setup_logging(level: str = "INFO", config_path: str = ""):
    """
    Load the YAML config when present, otherwise fall back to basicConfig.
    The redacting filter is attached to every root handler either way.
    """
    if config_path and os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            # Supports ${LOG_LEVEL} format.
            template = string.Template(f.read())

        mapping = os.environ.copy()
        mapping.setdefault("LOG_LEVEL", level.upper())

        content = template.safe_substitute(mapping)
        config = yaml.safe_load(content)
        logging.config.dictConfig(config)
    else:
        logging.basicConfig(
            level=getattr(logging, level.upper(), logging.INFO),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    for handler in logging.getLogger().handlers:
        if _redactor not in handler.filters:
            handler.addFilter(_redactor)
