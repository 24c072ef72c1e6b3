from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from taskmanager.config import DATABASE_URL

# Only apply sqlite-specific connect_args when using sqlite
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

# pool_pre_ping drops stale connections before a request uses them
engine = create_engine(
    DATABASE_URL,
    connect_args=connect_args,
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    # models must be imported so their tables are registered on Base.metadata
    from taskmanager.models import task, user  # noqa: F401
    Base.metadata.create_all(bind=engine)


def describe_database() -> str:
    """Database location for logs, without credentials."""
    return engine.url.render_as_string(hide_password=True)
