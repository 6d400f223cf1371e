"""File storage adapters - Uploaded document storage."""

from .local import LocalFileStorage

__all__ = ["LocalFileStorage"]
