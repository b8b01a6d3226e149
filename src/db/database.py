"""
Database connection and operations.
"""

from pathlib import Path
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker, Session
from .models import Base, News, news_players


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Database manager for the rumor pipeline."""

    def __init__(self, db_path: str = None):
        """
        Initialize database connection.

        Args:
            db_path: Path to SQLite database file (defaults to DATABASE_PATH setting)
        """
        if db_path is None:
            from settings import DATABASE_PATH
            db_path = DATABASE_PATH

        # Ensure data directory exists
        if db_path != ':memory:':
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.db_path = db_path
        self.engine = create_engine(f'sqlite:///{db_path}', echo=False)
        event.listen(self.engine, 'connect', _enable_sqlite_foreign_keys)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        # Create tables if they don't exist
        Base.metadata.create_all(self.engine)

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    @staticmethod
    def is_unique_violation(error: IntegrityError, *columns: str) -> bool:
        """
        Check whether an IntegrityError comes from a unique constraint.

        Args:
            error: Error raised by the insert
            columns: Column names to match (any of them); empty matches any unique violation

        Returns:
            True if the error is a unique/primary key violation on one of the columns
        """
        message = str(getattr(error, 'orig', error)).lower()
        if 'unique' not in message and 'duplicate' not in message:
            return False
        if not columns:
            return True
        return any(column.lower() in message for column in columns)

    def get_dedupe_window(self, session: Session, days: int = None, now: Optional[datetime] = None) -> list:
        """
        Get news published within the deduplication window.

        Args:
            session: Database session
            days: Window size in days (defaults to DEDUPE_WINDOW_DAYS setting)
            now: Reference time (defaults to utcnow)

        Returns:
            List of News objects, newest first
        """
        if days is None:
            from settings import DEDUPE_WINDOW_DAYS
            days = DEDUPE_WINDOW_DAYS
        cutoff = (now or datetime.utcnow()) - timedelta(days=days)
        return (session.query(News)
                .filter(News.pub_date >= cutoff)
                .order_by(News.pub_date.desc())
                .all())

    def get_reassessment_queue(self, session: Session, limit: int = 10) -> list:
        """Get news flagged for reassessment, oldest request first."""
        return (session.query(News)
                .filter(News.needs_reassessment.is_(True))
                .order_by(News.updated_at.asc(), News.id.asc())
                .limit(limit)
                .all())

    def insert_news(self, session: Session, news_data: dict) -> News:
        """
        Insert and commit a news record.

        Args:
            session: Database session
            news_data: Column values for the News record

        Returns:
            Persisted News object

        Raises:
            IntegrityError: If link or content_hash already exists (session is rolled back)
        """
        news = News(is_duplicate=False, **news_data)
        session.add(news)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise
        return news

    def get_news_without_players(self, session: Session, limit: int = None) -> list:
        """
        Get analyzed news (ai_probability not NULL) that have no linked players.

        Args:
            session: Database session
            limit: Maximum number of records (None = all)

        Returns:
            List of News objects, newest first
        """
        linked = session.query(news_players.c.news_id)
        query = (session.query(News)
                 .filter(News.ai_probability.isnot(None))
                 .filter(~News.id.in_(linked))
                 .order_by(News.pub_date.desc()))
        if limit:
            query = query.limit(limit)
        return query.all()
