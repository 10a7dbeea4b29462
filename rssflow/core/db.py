from sqlmodel import Session, SQLModel, create_engine

from rssflow.core.config import settings

engine = create_engine(str(settings.SQLALCHEMY_DATABASE_URI), pool_pre_ping=True)


def init_db(session: Session) -> None:
    """Create tables. Schema migrations are not managed here."""
    # Import models so they are registered on SQLModel.metadata
    from rssflow import models  # noqa: F401

    SQLModel.metadata.create_all(session.get_bind())
