"""Settings for sqlbridge built on Pydantic Settings.

Configuration Sources (precedence order):
    1. Values passed explicitly to ``DatabaseSettings`` / ``validate_config``
    2. Environment variables prefixed with ``MYSQL_``
    3. A ``.env`` file in the working directory
    4. Field defaults
"""

from sqlbridge.settings.base import DatabaseSettings
from sqlbridge.settings.main import get_settings, validate_config

__all__ = [
    "DatabaseSettings",
    "get_settings",
    "validate_config",
]
