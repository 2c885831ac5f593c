"""
Database module for the consistency core

SQLAlchemy persistence for references and generation history.

Usage:
    from database import init_database
    from database.sql_repository import SQLReferenceRepository, SQLHistoryRepository

    init_database()  # uses settings.DATABASE_URL
    references = SQLReferenceRepository()
    history = SQLHistoryRepository(references=references)
"""

from database.connection import init_database, get_db_session

__all__ = ["init_database", "get_db_session"]
