"""
Database configuration and session management
"""

from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
import structlog

from showcase.core.config import settings

logger = structlog.get_logger(__name__)


def create_db_engine(database_url: str):
    """Create an engine, sharing one connection for SQLite"""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False}
        )
    return create_engine(database_url, pool_pre_ping=True)


# Create database engine
engine = create_db_engine(settings.DATABASE_URL)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create base class for models
Base = declarative_base()


async def init_db():
    """Initialize database"""
    # Register models on the metadata before creating tables
    import showcase.models.category  # noqa: F401
    import showcase.models.product  # noqa: F401
    import showcase.models.product_image  # noqa: F401
    import showcase.models.product_param  # noqa: F401

    try:
        # Create all tables
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables created successfully")
    except Exception as e:
        logger.error("Failed to initialize database", err=str(e))
        raise


def check_connection() -> bool:
    """Return True when the database answers a trivial query"""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.warning("Database connection check failed", err=str(e))
        return False


def get_db():
    """Get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
