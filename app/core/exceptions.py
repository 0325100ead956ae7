from fastapi import status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class NotFound(ServiceError):
    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class StudentNotFound(NotFound):
    def __init__(self, usn: str) -> None:
        super().__init__(f"Student {usn} not found")
        self.usn = usn


class InvalidAmount(ServiceError):
    def __init__(self, message: str = "Amount must be a positive whole number") -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class OverpaymentRejected(ServiceError):
    """Payment or correction would leave amount_paid above amount_due."""

    def __init__(self, amount_due: int, amount_paid: int, attempted: int, message: str = None) -> None:
        super().__init__(
            message or f"Amount {attempted} exceeds outstanding balance {amount_due - amount_paid}",
            status.HTTP_409_CONFLICT,
        )
        self.amount_due = amount_due
        self.amount_paid = amount_paid
        self.attempted = attempted


class VerificationFailed(ServiceError):
    """Gateway signature did not verify, or the gateway timed out. Terminal for the attempt."""

    def __init__(self, message: str = "Payment verification failed") -> None:
        super().__init__(message, status.HTTP_402_PAYMENT_REQUIRED)


class LedgerConflict(ServiceError):
    """Concurrent writers kept invalidating the record version. Safe to retry."""

    def __init__(self, message: str = "Fee record is being updated concurrently, please retry") -> None:
        super().__init__(message, status.HTTP_409_CONFLICT)


class GatewayUnavailable(ServiceError):
    def __init__(self, message: str = "Payment gateway unavailable") -> None:
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)
