from contextlib import contextmanager
from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from coursehub.extensions import db
from coursehub.errors import StorageError


@contextmanager
def atomic(action, on_integrity_error=None):
    """Run the block as one unit of work on ``db.session``.

    Commits when the block exits cleanly. Any exception rolls back every
    statement issued inside the block. SQLAlchemy errors are logged and
    surfaced as :class:`StorageError`, except integrity violations when
    ``on_integrity_error`` supplies the error to raise instead. Everything
    else propagates unchanged.
    """
    try:
        yield db.session
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        if on_integrity_error is not None:
            current_app.logger.warning(f"Integrity violation while {action}: {e.orig}")
            raise on_integrity_error from e
        current_app.logger.exception(f"Error while {action}")
        raise StorageError(f"Error while {action}") from e
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.exception(f"Error while {action}")
        raise StorageError(f"Error while {action}") from e
    except Exception:
        db.session.rollback()
        raise
