# storefront/database.py
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

# ---------------------------------------------------------
# Durable client-side storage (stand-in for browser storage)
#
# - one SQLite file per application instance by default
# - check_same_thread=False: the engine is built on one thread and
#   may be used from an executor thread by an embedding app
#
# The engine is built by the composition root and passed down; nothing
# here holds module-level state.
# ---------------------------------------------------------


def build_engine(db_url: str, echo: bool = False) -> Engine:
    """
    Create the storage engine for `db_url`.

    SQLite URLs get `check_same_thread=False`; other backends are
    passed through untouched.
    """
    connect_args = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False

    return create_engine(
        db_url,
        echo=echo,  # set to True if you want to debug SQL queries
        connect_args=connect_args,
    )


def create_db_and_tables(engine: Engine) -> None:
    """
    Create all tables defined in SQLModel metadata if they do not exist.

    Called once when the storage is constructed.
    """
    # Import so the table is registered on SQLModel.metadata
    from storefront.models import storage as _storage_models  # noqa: F401

    SQLModel.metadata.create_all(engine)

