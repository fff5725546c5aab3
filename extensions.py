"""Flask extension instances shared across the application, plus the unit-of-work helper."""

from contextlib import contextmanager

from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect

db = SQLAlchemy()
csrf = CSRFProtect()
limiter = Limiter(get_remote_address, storage_uri="memory://")


@contextmanager
def atomic():
    """Run the enclosed writes as one unit of work.

    Commits when the block exits normally and rolls back on any exception,
    so a failed multi-step write leaves no partial rows behind.
    """
    try:
        yield db.session
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
