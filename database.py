"""
Database connection and session management
Supports PostgreSQL and SQLite; runs without a database when DATABASE_URL is empty
"""
from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from config import settings

# Base class for models
Base = declarative_base()

# Database configuration
DATABASE_AVAILABLE = False
engine = None
SessionLocal = None


def create_database_engine(database_url: str):
    """Create an engine with pool options suited to the URL's dialect"""
    if database_url.startswith("postgresql"):
        return create_engine(
            database_url,
            pool_pre_ping=True,  # Verify connections before using
            pool_recycle=3600,   # Recycle connections after 1 hour
            pool_size=5,
            max_overflow=10,
            echo=settings.DEBUG,
            connect_args={"connect_timeout": 10},
        )
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=settings.DEBUG,
        )
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            echo=settings.DEBUG,
        )
    return create_engine(database_url, pool_pre_ping=True, echo=settings.DEBUG)


def init_database(database_url: str = None):
    """Initialize database connection"""
    global engine, SessionLocal, DATABASE_AVAILABLE

    database_url = settings.DATABASE_URL if database_url is None else database_url
    if not database_url:
        print("[WARN] DATABASE_URL is not set, using in-memory storage (data is lost on restart)")
        DATABASE_AVAILABLE = False
        return

    try:
        engine = create_database_engine(database_url)
        # Test connection
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        print(f"[OK] Database connection established ({engine.dialect.name})")
        SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        DATABASE_AVAILABLE = True

    except Exception as e:
        print(f"[WARN] Database connection failed: {e}")
        print("[WARN] Using in-memory storage (data is lost on restart)")
        engine = None
        SessionLocal = None
        DATABASE_AVAILABLE = False


# Initialize on module load
init_database()


def init_db():
    """Initialize database tables"""
    if DATABASE_AVAILABLE and engine is not None:
        import models  # noqa: F401  (registers tables on Base.metadata)
        Base.metadata.create_all(bind=engine)
