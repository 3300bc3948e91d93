from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def create_session_factory(database_url: str):
    """Create the engine for ``database_url`` and a session factory bound to it.

    Tables are created on the spot. Sessions keep attribute values after commit
    so rows can be handed back to callers once the session is closed.
    """
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Handlers and threadpool workers share the same file
        connect_args["check_same_thread"] = False

    engine = create_engine(database_url, connect_args=connect_args)
    Base.metadata.create_all(bind=engine)
    return engine, sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
