from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from textile_reports.core.config import settings

engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    pool_size=10,
    max_overflow=20,
    echo=settings.DEBUG and settings.ENVIRONMENT != "test"
)

# Report sessions are opened by the record reader, never per request
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()
