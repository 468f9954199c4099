from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from ferry.config import settings

connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    pool_pre_ping=True,
    connect_args=connect_args,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    """Yield a database session for one request"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db():
    """Create all tables (development and tests)"""
    import ferry.models  # noqa: F401  registers the models on Base.metadata
    Base.metadata.create_all(bind=engine)
