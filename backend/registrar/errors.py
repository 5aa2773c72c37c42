"""
Exceptions raised by the registrar workflow
"""


class RegistrarError(Exception):
    """Base exception for the registrar workflow"""
    status_code = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__doc__)
        self.message = message or self.__doc__


class InvalidDocumentType(RegistrarError):
    """Unknown or inactive document type"""
    status_code = 400


class InvalidQuantity(RegistrarError):
    """Quantity must be at least 1"""
    status_code = 400


class MissingRejectionReason(RegistrarError):
    """A rejection reason is required"""
    status_code = 400


class RequestNotFound(RegistrarError):
    """Request not found"""
    status_code = 404


class PaymentNotFound(RegistrarError):
    """Payment not found"""
    status_code = 404


class Forbidden(RegistrarError):
    """Not allowed to access this request"""
    status_code = 403


class InvalidTransition(RegistrarError):
    """Illegal status change"""
    status_code = 409


class PaymentAlreadyVerified(RegistrarError):
    """Payment for this request is already verified"""
    status_code = 409


class StorageFailure(RegistrarError):
    """Storage backend error"""
    status_code = 503


class QueueNumberTaken(StorageFailure):
    """Queue number already assigned"""
    status_code = 409


class NotificationFailure(RegistrarError):
    """Notification could not be delivered; never raised, only reported"""
    status_code = 200


class InvalidProofFile(RegistrarError):
    """Payment proof must be an image or PDF"""
    status_code = 400


class ProofTooLarge(RegistrarError):
    """Payment proof file is too large"""
    status_code = 413
