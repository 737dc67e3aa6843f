# marketingpro/utils/transactions.py
from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from marketingpro.errors import DatastoreUnavailable
from marketingpro.extensions import db


@contextmanager
def atomic():
    """
    Commit the session on success, roll back on any failure.

    IntegrityError is re-raised untouched so callers can treat a unique
    constraint violation as a lost race. Every other SQLAlchemy failure
    becomes DatastoreUnavailable, which the webhook layer answers with 503.
    """
    try:
        yield db.session
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise DatastoreUnavailable(f"Datastore operation failed: {exc.__class__.__name__}") from exc
    except Exception:
        db.session.rollback()
        raise
