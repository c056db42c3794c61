from sqlbridge.api.mysql import MySQL

__all__ = [
    "MySQL",
]
