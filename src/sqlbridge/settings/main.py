from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from sqlbridge.common.exceptions import configuration_error
from sqlbridge.settings.base import DatabaseSettings

_settings: Optional[DatabaseSettings] = None


def validate_config(config: Union[DatabaseSettings, Mapping[str, Any], None]) -> DatabaseSettings:
    """Validate a caller supplied database configuration.

    Args:
        config: A ``DatabaseSettings`` instance, a mapping of setting names
            to values, or None to read everything from the environment.

    Returns:
        Validated DatabaseSettings.

    Raises:
        SQLBridgeError: ``INVALID_CONFIG`` when config is not a mapping,
            ``INVALID_SETTING`` when a setting has the wrong type or value.
    """
    if isinstance(config, DatabaseSettings):
        return config

    if config is None:
        config = {}

    if not isinstance(config, Mapping):
        raise configuration_error(
            f"Invalid config: expected a mapping, got {type(config).__name__}"
        )

    try:
        return DatabaseSettings(**dict(config))
    except ValidationError as e:
        invalid = ", ".join(".".join(str(part) for part in err["loc"]) for err in e.errors())
        raise configuration_error(
            f"Invalid setting(s): {invalid}",
            setting=invalid,
            cause=e,
        ) from e


def get_settings(force_reload: bool = False) -> DatabaseSettings:
    """Get the process-wide settings loaded from the environment.

    Args:
        force_reload: If True, creates a new instance even if one already
            exists. Useful for testing or when environment variables have
            changed.

    Returns:
        DatabaseSettings: The singleton instance
    """
    global _settings

    if _settings is None or force_reload:
        _settings = validate_config(None)

    return _settings
