"""Key casing helpers between wire (snake_case) and application (camelCase) names."""

import re
from typing import Any, Dict, Iterable, List, Mapping, TypeVar

T = TypeVar("T")

_ACRONYM_BOUNDARY = re.compile(r"([A-Z]+)([A-Z][a-z])")
_WORD_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_UNDERSCORE_LOWER = re.compile(r"_([a-z])")


def to_snake_case(value: str) -> str:
    """``orderFormId`` -> ``order_form_id``, ``isURLValid`` -> ``is_url_valid``.

    Already snake_case input is unchanged.
    """
    value = _ACRONYM_BOUNDARY.sub(r"\1_\2", value)
    return _WORD_BOUNDARY.sub(r"\1_\2", value).lower()


def to_camel_case(value: str) -> str:
    """``order_form_id`` -> ``orderFormId``."""
    return _UNDERSCORE_LOWER.sub(lambda match: match.group(1).upper(), value)


def convert_keys_to_camel_case(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {to_camel_case(key): value for key, value in row.items()}


def array_unique(values: Iterable[T]) -> List[T]:
    """Drop duplicates keeping first-seen order."""
    return list(dict.fromkeys(values))
