"""Exceptions raised by the payment and credit ledger services."""


class LedgerError(Exception):
    pass


class ValidationError(LedgerError):
    pass


class NotFound(LedgerError):
    pass


class PaymentNotFound(NotFound):
    pass


class UserNotFound(NotFound):
    pass


class ConflictError(LedgerError):
    pass


class AlreadyApproved(ConflictError):
    pass


class AlreadyRejected(ConflictError):
    pass


class CannotRejectApproved(ConflictError):
    pass


class CannotApproveRejected(ConflictError):
    pass


class DuplicateTransaction(ConflictError):
    pass


class InsufficientCredits(LedgerError):
    def __init__(self, credits_remaining: int):
        self.credits_remaining = credits_remaining
        super().__init__(f"Insufficient SMS credits ({credits_remaining} remaining)")


class UpstreamFailure(LedgerError):
    pass


class TransactionConflict(UpstreamFailure):
    pass


class SmsDeliveryFailed(UpstreamFailure):
    pass
