"""
flowfit/errors.py

Exception taxonomy for the FlowFit core.
Services raise these; the caller (UI layer) decides how to present them.
"""


class FlowFitError(Exception):
    """Base class for all FlowFit core errors."""


class InputValidationError(FlowFitError):
    """User-correctable input; raised before any network access."""


UserInputInvalid = InputValidationError


class PermissionDeniedError(FlowFitError):
    """A platform permission is missing; carries a remediation hint."""

    def __init__(self, message: str, remediation: str = "open settings") -> None:
        super().__init__(message)
        self.remediation = remediation


class ProviderUnavailableError(FlowFitError):
    """The wallet provider is not connected."""


class WalletProviderError(FlowFitError):
    """Raised by wallet providers when an RPC or signing request fails."""

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


class ContractCallFailed(FlowFitError):
    """The simulate-call or the state-changing submission failed."""


class PersistenceError(FlowFitError):
    """A key-value store operation failed."""


class KeyCustodyError(PersistenceError):
    """The custodial key could not be stored or recovered."""


class SchedulingError(FlowFitError):
    """A reminder could not be registered with the notification substrate."""


class NotificationPermissionError(SchedulingError, PermissionDeniedError):
    """Notification permission has not been granted."""


class NotificationUnavailableError(FlowFitError):
    """Raised by notification substrates that cannot accept registrations."""
