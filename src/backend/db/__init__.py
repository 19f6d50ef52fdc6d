"""Database module."""

from db.cosmos_session import close_cosmos, ensure_containers, get_database

__all__ = ["get_database", "ensure_containers", "close_cosmos"]
