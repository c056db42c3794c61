from sqlbridge.pool.manager import ConnectionActivity, ConnectionPool

__all__ = [
    "ConnectionActivity",
    "ConnectionPool",
]
