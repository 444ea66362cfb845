"""Database Gateway interface and SQLite implementation."""

from .gateway import DatabaseGateway
from .database import AsyncMemoryDatabase
from .schema import init_database

__all__ = ["DatabaseGateway", "AsyncMemoryDatabase", "init_database"]
