# barbershop/db.py

from sqlmodel import SQLModel, create_engine, Session

from barbershop.config import get_settings

DATABASE_URL = get_settings().database_url

# SQLite needs check_same_thread off when used from FastAPI's threadpool
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(
    DATABASE_URL,
    echo=False,
    connect_args=connect_args,
)


def create_db_and_tables():
    # models must be imported so their tables are registered on the metadata
    from barbershop import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


# Dependency: one session per request
def get_session():
    with Session(engine) as session:
        yield session
