"""
Exception Classes - Strongly typed exception hierarchy.

NO DICTIONARIES - All exceptions have typed attributes.
"""


class PremiumError(Exception):
    """Base exception for all premium activation errors."""

    pass


class UnauthenticatedError(PremiumError):
    """Raised when no access credential is available. Recoverable via login."""

    def __init__(self, message: str = "No access credential available") -> None:
        self.message = message
        super().__init__(f"Unauthenticated: {message}")


class PaymentProviderError(PremiumError):
    """Raised when checkout session creation fails. The user may retry."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Payment provider error: {message}")


class ActivationError(PremiumError):
    """
    Raised when the post-payment write or verification fails.

    Money may already have moved, so this always requires a support contact.
    """

    def __init__(self, message: str, reason: str = "activation_failed") -> None:
        self.message = message
        self.reason = reason
        super().__init__(f"Activation failed: {message}")


class AccountServiceError(ActivationError):
    """Raised when an Account Service call fails (network, HTTP error, rejection)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        reason = "network_error" if status_code is None else "service_rejected"
        super().__init__(message, reason=reason)


class VerificationMismatchError(ActivationError):
    """Raised when the premium write was acknowledged but the re-read disagrees."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(
            f"Account {user_id} is not premium after activation write",
            reason="verification_mismatch",
        )


class ProfileCacheError(PremiumError):
    """Raised when the local profile cache cannot be written."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Profile cache error: {message}")


class JournalError(PremiumError):
    """Raised when the purchase journal cannot be read or written."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Purchase journal error: {message}")
