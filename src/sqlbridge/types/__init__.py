from sqlbridge.types.base import SQLBridgeModel
from sqlbridge.types.results import ExecutionResult, Totals

__all__ = [
    "SQLBridgeModel",
    "ExecutionResult",
    "Totals",
]
