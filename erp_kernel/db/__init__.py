"""
Module: erp_kernel.db
Responsibility: Database infrastructure -- declarative base, engine and
    session management for persisted conversion links.
Architecture position: Kernel > DB.  Lowest persistence layer; imports only
    SQLAlchemy and erp_kernel.logging_config.
"""

from erp_kernel.db.base import Base, UUIDString
from erp_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_engine,
    get_session,
    init_engine_from_url,
    reset_engine,
    session_scope,
)

__all__ = [
    "Base",
    "UUIDString",
    "create_tables",
    "drop_tables",
    "get_engine",
    "get_session",
    "init_engine_from_url",
    "reset_engine",
    "session_scope",
]
