from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine, Session
from app.core.config import settings

def build_engine(database_url: str):
    # check_same_thread is needed for SQLite, remove for PostgreSQL
    if not database_url.startswith("sqlite"):
        return create_engine(database_url)
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database
        return create_engine(database_url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(database_url, connect_args={"check_same_thread": False})

engine = build_engine(settings.DATABASE_URL)

def get_session():
    with Session(engine) as session:
        yield session

def create_db_and_tables(bind=None):
    # Tables are registered on import
    import app.models  # noqa: F401
    SQLModel.metadata.create_all(bind or engine)
