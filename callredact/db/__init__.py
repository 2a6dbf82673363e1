from callredact.db.models import Base, RedactionRecordModel
from callredact.db.session import create_engine, create_session_factory, init_db

__all__ = [
    "Base",
    "RedactionRecordModel",
    "create_engine",
    "create_session_factory",
    "init_db",
]
