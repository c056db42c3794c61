from typing import Any, Dict, List, Optional

from pydantic import Field

from sqlbridge.types.base import SQLBridgeModel


class ExecutionResult(SQLBridgeModel):
    """Outcome of one statement sent through the connection pool."""

    rows: List[Dict[str, Any]] = Field(default_factory=list)
    insert_id: Optional[int] = Field(
        default=None,
        description="Last generated AUTO_INCREMENT value, None when the statement generated none"
    )
    affected_rows: int = Field(default=0, ge=-1)


class Totals(SQLBridgeModel):
    """Pagination metadata derived from the last ``get`` of a model."""

    total: int = Field(default=0, ge=0)
    pages: int = Field(default=0, ge=0)
    page: Optional[int] = Field(default=None, ge=1)
    page_size: Optional[int] = Field(default=None, ge=1)
