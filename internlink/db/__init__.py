"""
Database module - PostgreSQL and MongoDB connections.
"""
from internlink.db.postgres import lookup_session, test_postgres_connection
from internlink.db.mongodb import get_mongo_db, test_mongo_connection

__all__ = [
    "lookup_session",
    "test_postgres_connection",
    "get_mongo_db",
    "test_mongo_connection"
]
