import os
from contextlib import contextmanager

from dotenv import load_dotenv
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

load_dotenv()

DB_URL = os.getenv("DB_URL", "sqlite:///foms.db")
connect_args = {"check_same_thread": False} if DB_URL.startswith("sqlite") else {}

engine = create_engine(DB_URL, echo=False, future=True, connect_args=connect_args)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

# Import AFTER engine so models bind to this MetaData one time
from models import Base, Role, User  # noqa: E402
from logger import log_error, log_info  # noqa: E402

DEFAULT_ADMIN = os.getenv("FOMS_DEFAULT_ADMIN", "admin")


def get_session():
    return SessionLocal()


@contextmanager
def transaction(session, label: str):
    """
    Commit on success. Validation errors (ValueError) roll back and propagate
    for the page to show; anything else is also logged with its traceback.
    """
    try:
        yield
        session.commit()
    except ValueError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        log_error(f"{label} failed: {e}", exc_info=True)
        raise


def init_db(bind=None):
    """Create tables and make sure at least one ADMIN operator exists."""
    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    _seed_admin(bind)


def _seed_admin(bind) -> None:
    Session = sessionmaker(bind=bind, autoflush=False, autocommit=False, future=True)
    with Session() as s:
        if s.query(User).count():
            return
        s.add(User(username=DEFAULT_ADMIN, role=Role.ADMIN))
        s.commit()
    log_info(f"Seeded default admin operator '{DEFAULT_ADMIN}'")
