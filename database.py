from sqlalchemy import create_engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker
import logging
import os
from dotenv import load_dotenv
from google.cloud.sql.connector import Connector
load_dotenv()

logger = logging.getLogger(__name__)

# PostgreSQL configuration (Cloud SQL)
DB_USER = os.getenv("DB_USER")
DB_PASSWORD = os.getenv("DB_PASSWORD")
DB_NAME = os.getenv("DB_NAME")

# Google Cloud SQL configuration
INSTANCE_CONNECTION_NAME = os.getenv("INSTANCE_CONNECTION_NAME")

# Local / test database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./zentia.db")


def build_engine(database_url: str = DATABASE_URL):
    """
    Create the SQLAlchemy engine.

    Uses the Google Cloud SQL connector when INSTANCE_CONNECTION_NAME is set,
    otherwise connects to ``database_url`` directly.
    """
    if INSTANCE_CONNECTION_NAME:
        def getconn():
            connector = Connector()
            conn = connector.connect(
                INSTANCE_CONNECTION_NAME,
                "pg8000",
                user=DB_USER,
                password=DB_PASSWORD,
                db=DB_NAME
            )
            return conn

        logger.info(f"Connecting to Google Cloud SQL: {INSTANCE_CONNECTION_NAME}")
        return create_engine(
            "postgresql+pg8000://",
            creator=getconn,
            pool_size=12,
            max_overflow=20,
            pool_timeout=30,
            pool_recycle=1000
        )

    if database_url.startswith("sqlite"):
        # Category reads run in worker threads
        return create_engine(database_url, connect_args={"check_same_thread": False})

    return create_engine(
        database_url,
        pool_size=12,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=1000
    )


engine = build_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for getting database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
