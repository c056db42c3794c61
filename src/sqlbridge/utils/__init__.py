from sqlbridge.utils.casing import (
    array_unique,
    convert_keys_to_camel_case,
    to_camel_case,
    to_snake_case,
)
from sqlbridge.utils.decorators import retry_with_backoff, traced

__all__ = [
    "array_unique",
    "convert_keys_to_camel_case",
    "to_camel_case",
    "to_snake_case",
    "retry_with_backoff",
    "traced",
]
