from __future__ import annotations

from app.db.base import Base
from app.db.session import create_engine, create_session_maker, create_tables

__all__ = ["Base", "create_engine", "create_session_maker", "create_tables"]
