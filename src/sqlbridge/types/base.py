"""Base class for sqlbridge value objects."""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict


class SQLBridgeModel(BaseModel):
    """Validated value object returned by the pool and the facade.

    ``to_dict()`` gives the plain mapping form, without unset optional
    values, which is what callers serialize into API responses.
    """

    model_config = ConfigDict(
        use_enum_values=True,
        validate_assignment=True,
    )

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)
