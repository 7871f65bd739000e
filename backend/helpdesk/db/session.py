from sqlmodel import Session, SQLModel, create_engine

from helpdesk.core.config import settings

connect_args = {"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}
engine = create_engine(settings.database_url, pool_pre_ping=True, connect_args=connect_args)


def create_db_and_tables() -> None:
    # import for table registration
    import helpdesk.models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session():
    with Session(engine) as session:
        yield session


def session_scope() -> Session:
    """Short-lived session for code outside request dependencies (websockets, scripts)."""
    return Session(engine)
