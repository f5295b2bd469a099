from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from scholardesk.config import settings

_url = settings.database_url_fixed
_connect_args = {"check_same_thread": False} if _url.startswith("sqlite") else {}

engine = create_engine(_url, connect_args=_connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
