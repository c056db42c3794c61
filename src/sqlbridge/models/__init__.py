from sqlbridge.models.base import Model

__all__ = ["Model"]
