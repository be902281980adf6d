import json
import sqlite3
from datetime import timezone

from sqlalchemy import create_engine, Column, Integer, String, Text, DateTime
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.types import TypeDecorator

from config import Config
from models import validate_args
from utils import clock

Base = declarative_base()
ENGINE = None
SessionLocal = sessionmaker(autoflush=False, expire_on_commit=False)

# --- SQLite Connection Optimizations ---
# WAL journal: readers never block the writer
@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()

# --- Column Types ---

class UTCDateTime(TypeDecorator):
    """
    Store aware datetimes as naive UTC and give them back as aware UTC.

    SQLite compares datetimes as strings, so every value must be written in
    the same timezone for `perform_at <= :now` to be meaningful.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=clock.tz)
        return value.astimezone(timezone.utc).replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)


class JobArgs(TypeDecorator):
    """JSON array of str, int, bool and None values."""

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return json.dumps(validate_args(value or []))

    def process_result_value(self, value, dialect):
        if not value:
            return []
        return json.loads(value)

# --- Job Model ---

class JobRecord(Base):
    __tablename__ = 'jobs'

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Registry key of the job type
    name = Column(String, nullable=False, default='')
    args = Column(JobArgs, nullable=False, default=lambda: [])

    # Scheduling
    perform_at = Column(UTCDateTime, nullable=False, index=True)
    frequency = Column(String, nullable=False, default='')
    queue = Column(String, nullable=False, default='default')
    locked_at = Column(UTCDateTime, nullable=True)
    number_attempts = Column(Integer, nullable=False, default=0)

    # Status/Logging fields
    last_error = Column(Text, nullable=False, default='')
    failed_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=lambda: clock.now())
    updated_at = Column(UTCDateTime, nullable=False, default=lambda: clock.now(), onupdate=lambda: clock.now())

    def __repr__(self):
        return f"<JobRecord(id={self.id}, name='{self.name}', queue='{self.queue}', attempts={self.number_attempts})>"

# --- Utility Functions ---

def configure(url=None):
    """(Re)create the engine, by default from the `database_url` config."""
    global ENGINE
    url = url or Config().get("database_url")
    if ENGINE is not None:
        ENGINE.dispose()
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {"timeout": 30, "check_same_thread": False}
    ENGINE = create_engine(url, connect_args=connect_args)
    SessionLocal.configure(bind=ENGINE)
    return ENGINE


def get_engine():
    if ENGINE is None:
        configure()
    return ENGINE


def initialize_db():
    """Create the database and tables if they don't exist."""
    Base.metadata.create_all(bind=get_engine())


def get_session():
    """Returns a new session object."""
    get_engine()
    return SessionLocal()


def close_connections():
    """Close the pooled connections, new ones are opened on next use."""
    if ENGINE is not None:
        ENGINE.dispose()
