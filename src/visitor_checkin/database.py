"""
Database connection/session configuration for the check-in backend.
Uses SQLAlchemy with PostgreSQL; DATABASE_URL may point anywhere else (SQLite in tests).
"""

from sqlalchemy import create_engine
from sqlalchemy.engine.url import URL, make_url
from sqlalchemy.orm import sessionmaker

from . import config


# PUBLIC_INTERFACE
def get_postgres_url():
    """
    Constructs PostgreSQL connection string from environment variables.
    Requires:
        - POSTGRES_USER
        - POSTGRES_PASSWORD
        - POSTGRES_DB
        - POSTGRES_HOST
        - POSTGRES_PORT
    """
    return URL.create(
        drivername="postgresql+psycopg2",
        username=config.POSTGRES_USER,
        password=config.POSTGRES_PASSWORD,
        host=config.POSTGRES_HOST,
        port=config.POSTGRES_PORT,
        database=config.POSTGRES_DB,
    ).render_as_string(hide_password=False)


# PUBLIC_INTERFACE
def get_database_url():
    """DATABASE_URL when set, otherwise the URL built from POSTGRES_* variables."""
    return config.DATABASE_URL or get_postgres_url()


# PUBLIC_INTERFACE
def create_session_factory(url):
    """
    Builds an engine for `url` and returns a session factory bound to it.
    SQLite connections are shared across threads (redemption and notification workers).
    """
    if make_url(url).get_backend_name() == "sqlite":
        engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})
    else:
        engine = create_engine(url, pool_pre_ping=True, pool_recycle=3600)
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


SQLALCHEMY_DATABASE_URL = get_database_url()

SessionLocal = create_session_factory(SQLALCHEMY_DATABASE_URL)
engine = SessionLocal.kw["bind"]


# PUBLIC_INTERFACE
def get_db():
    """
    Yields a new database session.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
