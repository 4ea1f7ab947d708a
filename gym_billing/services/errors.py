"""
Typed failures raised by the billing services.

Every error carries a machine-readable ``code`` so callers (the HTTP layer,
scripts) can branch on type instead of parsing messages.

    BillingError
    +-- NotFoundError
    +-- InvalidDateRangeError
    +-- PastEndDateError
    +-- OverlappingRangeError
    +-- InvalidRefundError
    +-- InvalidAmountError
    +-- ConstraintViolationError
    +-- LedgerImmutableError
"""


class BillingError(Exception):
    """Base exception for billing operations"""
    code = 'BILLING_ERROR'


class NotFoundError(BillingError):
    """Referenced row is absent or belongs to another tenant"""
    code = 'NOT_FOUND'

    def __init__(self, entity, entity_id=None):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class InvalidDateRangeError(BillingError):
    """Start date is not before end date"""
    code = 'INVALID_DATE_RANGE'


class PastEndDateError(BillingError):
    """End date lies before today"""
    code = 'PAST_END_DATE'


class OverlappingRangeError(BillingError):
    """Range intersects another live range of the same kind for the member"""
    code = 'OVERLAPPING_RANGE'

    def __init__(self, message, conflicting_id=None):
        self.conflicting_id = conflicting_id
        super().__init__(message)


class InvalidRefundError(BillingError):
    """Refund amount is not positive or exceeds what was paid"""
    code = 'INVALID_REFUND'


class InvalidAmountError(BillingError):
    """Raised when amount is invalid"""
    code = 'INVALID_AMOUNT'


class ConstraintViolationError(BillingError):
    """The store rejected the write for referential-integrity reasons"""
    code = 'CONSTRAINT_VIOLATION'


class LedgerImmutableError(BillingError):
    """Attempt to edit a recorded ledger entry"""
    code = 'LEDGER_IMMUTABLE'
