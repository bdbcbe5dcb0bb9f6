"""
Custom exception classes for the TRUIDA system.

Business decisions (no match, departed flight, missing prerequisite) are
never raised; they are returned as verification outcomes. The exceptions in
this module cover the remaining two kinds of failure: input rejected at the
boundary before it reaches a store, and infrastructure faults in the
persistence substrate.
"""

from typing import Optional, Dict, Any


class TruidaError(Exception):
    """
    Base exception class for all TRUIDA related errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    context : dict, optional
        Additional context information about the error.
    error_code : str, optional
        Unique error code for programmatic handling.
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message = message
        self.context = context or {}
        self.error_code = error_code
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return a formatted string representation of the error."""
        parts = [self.message]

        if self.error_code:
            parts.append(f"[Error Code: {self.error_code}]")

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            parts.append(f"[Context: {context_str}]")

        return " ".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the exception to a dictionary for structured logging.

        Returns
        -------
        dict
            Dictionary representation of the exception.
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": self.context,
        }


class ValidationError(TruidaError, ValueError):
    """
    Exception raised when caller input is rejected at the boundary.

    Validation errors never reach a store: the operation is refused before
    any state is read or written.
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.get("context", {})
        if field_name:
            context["field"] = field_name

        super().__init__(message, context, kwargs.get("error_code", "VAL_001"))


class EnrollmentValidationError(ValidationError):
    """Exception raised when a required identity field is empty or unparseable."""

    def __init__(self, message: str, field_name: str, value: Any = None) -> None:
        context = {"value": repr(value)} if value is not None else {}
        super().__init__(
            message, field_name=field_name, context=context, error_code="VAL_002"
        )


class BiometricInputError(ValidationError):
    """Exception raised for a malformed presented biometric (hash or embedding)."""

    def __init__(self, message: str, field_name: str, **kwargs) -> None:
        super().__init__(
            message,
            field_name=field_name,
            context=kwargs.get("context", {}),
            error_code="VAL_003",
        )


class StorageError(TruidaError):
    """
    Exception raised for faults in the persistence substrate.

    A storage error is an infrastructure failure, distinct from any access
    decision: it must never be interpreted as either a grant or a denial.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        store: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.get("context", {})
        if operation:
            context["operation"] = operation
        if store:
            context["store"] = store

        super().__init__(message, context, kwargs.get("error_code", "STORE_001"))


class RecordSerializationError(StorageError):
    """Exception raised when a persisted document cannot be encoded or decoded."""

    def __init__(self, message: str, store: str, **kwargs) -> None:
        super().__init__(
            message,
            operation="serialization",
            store=store,
            context=kwargs.get("context", {}),
            error_code="STORE_002",
        )


class LockTimeoutError(StorageError):
    """Exception raised when record or store exclusion is not obtained in time."""

    def __init__(self, lock_key: str, timeout_seconds: float) -> None:
        message = f"Timed out after {timeout_seconds}s waiting for lock '{lock_key}'"
        context = {"lock_key": lock_key, "timeout_seconds": timeout_seconds}
        super().__init__(
            message, operation="lock", context=context, error_code="STORE_003"
        )


class AccessLogWriteError(StorageError):
    """
    Exception raised when a decision was taken but its audit entry was not written.

    The decided outcome is attached so the caller can report it alongside the
    failure; any checkpoint grant in the outcome has already been persisted.
    """

    def __init__(self, message: str, outcome: Any = None, **kwargs) -> None:
        self.outcome = outcome
        context = kwargs.get("context", {})
        if outcome is not None:
            context["outcome_status"] = getattr(outcome.status, "value", outcome.status)
        super().__init__(
            message,
            operation="append",
            store="access_log",
            context=context,
            error_code="STORE_004",
        )


class FeatureExtractionError(TruidaError):
    """Exception raised when a capture payload cannot be turned into features."""

    def __init__(self, message: str, extraction_method: str, **kwargs) -> None:
        context = kwargs.get("context", {})
        context["extraction_method"] = extraction_method
        super().__init__(message, context, "CAPTURE_001")


class ConfigurationError(TruidaError):
    """
    Exception raised for configuration-related errors.

    This includes invalid configuration values or an unknown store backend.
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[str] = None,
        **kwargs,
    ) -> None:
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key
        if config_value:
            context["config_value"] = config_value

        super().__init__(message, context, kwargs.get("error_code", "CONFIG_001"))
