from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from photostock.config import DATABASE_URL, DB_ECHO


def engine_options(url: str) -> dict:
    opts = {"echo": DB_ECHO}
    if url.startswith("sqlite"):
        # sessions are used from FastAPI's threadpool and the event loop
        opts["connect_args"] = {"check_same_thread": False}
    return opts


engine = create_engine(DATABASE_URL, **engine_options(DATABASE_URL))

# sales rows are read back after commit (to_dict, fulfillment response)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

Base = declarative_base()


def init_db():
    from photostock import models  # noqa
    Base.metadata.create_all(bind=engine)


def get_db():
    """one session per request"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
