"""
Referral engine domain exceptions.

Each error carries the HTTP status and machine-readable code the API layer
returns for it.
"""


class ReferralError(Exception):
    """Base exception for referral engine errors"""
    status_code = 400
    code = "REFERRAL_ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


class NotFoundError(ReferralError):
    """Raised when the promoter, invitation, user or commission does not exist"""
    status_code = 404
    code = "NOT_FOUND"


class InvalidStateError(ReferralError):
    """Raised when the requested transition is not allowed from the current status"""
    status_code = 409
    code = "INVALID_STATE"


class ExpiredError(ReferralError):
    """Raised when the invitation is past its expiry"""
    status_code = 410
    code = "EXPIRED"


class QuotaExceededError(ReferralError):
    """Raised when the promoter has no invitation slots left"""
    status_code = 403
    code = "QUOTA_EXCEEDED"


class DuplicateTargetError(ReferralError):
    """Raised when the target email already has an open invitation or is a registered partner"""
    status_code = 409
    code = "DUPLICATE_TARGET"


class AlreadyRegisteredError(ReferralError):
    """Raised when a partner or user with the same email or document already exists"""
    status_code = 409
    code = "ALREADY_REGISTERED"


class EmailMismatchError(ReferralError):
    """Raised when the accepting email differs from the invited email"""
    status_code = 400
    code = "EMAIL_MISMATCH"


class IneligibleError(ReferralError):
    """Raised when the user's role cannot become a promoter"""
    status_code = 403
    code = "INELIGIBLE"


class AlreadyExistsError(ReferralError):
    """Raised when the user already has a promoter profile"""
    status_code = 409
    code = "ALREADY_EXISTS"


class TransientConflictError(ReferralError):
    """Raised when a unique value could not be allocated; safe to retry"""
    status_code = 503
    code = "TRANSIENT_CONFLICT"
