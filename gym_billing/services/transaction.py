"""
Transactional mutation boundary.

Every balance-changing operation runs inside ``atomic()``: the entity row
update and the Payment row insert are committed together or not at all.
"""

from contextlib import contextmanager

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from gym_billing.extensions import db
from gym_billing.logging_config import get_logger
from gym_billing.services.errors import BillingError, ConstraintViolationError

logger = get_logger("transaction")


@contextmanager
def atomic(operation):
    """
    Run the enclosed block as one unit of work and commit at the end.

    ATOMIC: All or nothing. Any exception rolls the session back.
    IntegrityError surfaces as ConstraintViolationError, other database
    errors as BillingError.
    """
    try:
        yield db.session
        db.session.commit()
    except BillingError as e:
        db.session.rollback()
        logger.warning("%s rejected: %s", operation, e, extra={"error_code": e.code})
        raise
    except IntegrityError as e:
        db.session.rollback()
        logger.warning("%s violated a constraint: %s", operation, e.orig)
        raise ConstraintViolationError(f"{operation} failed: {e.orig}") from e
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.exception("%s failed", operation)
        raise BillingError(f"{operation} failed: {str(e)}") from e
    except Exception:
        db.session.rollback()
        raise
