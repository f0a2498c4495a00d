import os
from dotenv import load_dotenv
from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
load_dotenv()

def database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url
    return "mysql+mysqlconnector://{user}:{password}@{host}:{port}/{name}".format(
        user=os.getenv("DB_USER", "root"),
        password=os.getenv("DB_PASS", "pass1234"),
        host=os.getenv("DB_HOST", "127.0.0.1"),
        port=int(os.getenv("DB_PORT", "3306")),
        name=os.getenv("DB_NAME", "inventory"),
    )

DATABASE_URL = database_url()

if DATABASE_URL.startswith("sqlite"):
    # one shared connection so an in-memory database survives across sessions
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _sqlite_foreign_keys(dbapi_conn, _record):
        cur = dbapi_conn.cursor()
        cur.execute("PRAGMA foreign_keys=ON")
        cur.close()
else:
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def init_db():
    import models  # noqa: F401  (registers the tables on Base.metadata)
    Base.metadata.create_all(bind=engine)

# MySQL: 1062 duplicate entry, 1451/1452 foreign key parent/child
_DUPLICATE_ERRNOS = {1062}
_FOREIGN_KEY_ERRNOS = {1451, 1452}

def integrity_kind(exc: IntegrityError) -> str:
    """
    Classify an IntegrityError as "unique", "foreign_key" or "other".
    Works off the driver errno (mysql-connector) and falls back to
    the SQLite message text.
    """
    orig = getattr(exc, "orig", None)
    errno = getattr(orig, "errno", None)
    if errno in _DUPLICATE_ERRNOS:
        return "unique"
    if errno in _FOREIGN_KEY_ERRNOS:
        return "foreign_key"
    msg = str(orig or exc).upper()
    if "UNIQUE" in msg or "DUPLICATE" in msg:
        return "unique"
    if "FOREIGN KEY" in msg:
        return "foreign_key"
    return "other"
