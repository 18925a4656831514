from sqlalchemy import create_engine, event
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from reaction_engine.config import settings

SQLITE_BEGIN_MODE = "sqlite_begin_mode"


def create_db_engine(url: str, timeout: float = settings.STORE_TIMEOUT):
    """Build an engine whose connects, checkouts and statements are bounded by `timeout` seconds."""
    if make_url(url).get_backend_name() == "sqlite":
        sqlite_engine = create_engine(
            url,
            connect_args={"timeout": timeout, "check_same_thread": False},
        )

        # pysqlite needs its own BEGIN handling for savepoints to work;
        # WAL lets open readers coexist with a committing writer
        @event.listens_for(sqlite_engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None
            dbapi_connection.execute("PRAGMA journal_mode=WAL")

        @event.listens_for(sqlite_engine, "begin")
        def _begin(conn):
            mode = conn.get_execution_options().get(SQLITE_BEGIN_MODE)
            conn.exec_driver_sql(f"BEGIN {mode}" if mode else "BEGIN")

        return sqlite_engine

    timeout_ms = int(timeout * 1000)
    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_timeout=timeout,
        pool_recycle=1800,
        pool_pre_ping=True,
        connect_args={
            "connect_timeout": max(int(timeout), 1),
            "options": f"-c statement_timeout={timeout_ms} -c lock_timeout={timeout_ms}",
        },
    )


engine = create_db_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def begin_write(db: Session):
    """Start a write transaction on `db`, ending any read it still has open.

    On SQLite the database write lock is taken at BEGIN; writers queue on
    the busy timeout.
    """
    if db.in_transaction():
        db.commit()
    db.connection(execution_options={SQLITE_BEGIN_MODE: "IMMEDIATE"})


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
