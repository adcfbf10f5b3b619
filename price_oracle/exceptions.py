"""
Price Oracle Exceptions - Custom exception hierarchy.

Every failure surfaces to callers as PriceUnavailableError; the
subclasses below describe why.
"""

from datetime import datetime
from typing import Any, Optional


class OracleError(Exception):
    """Base exception for all price oracle errors."""

    def __init__(
        self,
        message: str,
        oracle_name: Optional[str] = None,
        instrument: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.oracle_name = oracle_name
        self.instrument = instrument
        self.original_error = original_error
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "oracle_name": self.oracle_name,
            "instrument": self.instrument,
            "original_error": str(self.original_error) if self.original_error else None,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.oracle_name:
            parts.append(f"[oracle={self.oracle_name}]")
        if self.instrument:
            parts.append(f"[instrument={self.instrument}]")
        if self.original_error:
            parts.append(f"(caused by: {self.original_error})")
        return " ".join(parts)


class FetchError(OracleError):
    """Error during price fetching from provider API."""

    def __init__(
        self,
        message: str,
        oracle_name: Optional[str] = None,
        instrument: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        request_url: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, oracle_name, instrument, original_error, context)
        self.status_code = status_code
        self.response_body = response_body
        self.request_url = request_url

    @property
    def is_client_error(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "status_code": self.status_code,
            "response_body": self.response_body,
            "request_url": self.request_url,
        })
        return data


class RateLimitError(OracleError):
    """Rate limit exceeded error."""

    def __init__(
        self,
        message: str,
        oracle_name: Optional[str] = None,
        instrument: Optional[str] = None,
        retry_after_seconds: Optional[int] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, oracle_name, instrument, original_error, context)
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data["retry_after_seconds"] = self.retry_after_seconds
        return data


class NormalizationError(OracleError):
    """Provider response could not be turned into a price."""

    def __init__(
        self,
        message: str,
        oracle_name: Optional[str] = None,
        instrument: Optional[str] = None,
        raw_data: Optional[Any] = None,
        field_name: Optional[str] = None,
        original_error: Optional[Exception] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, oracle_name, instrument, original_error, context)
        self.raw_data = raw_data
        self.field_name = field_name

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        data = super().to_dict()
        data.update({
            "raw_data": str(self.raw_data)[:500] if self.raw_data else None,
            "field_name": self.field_name,
        })
        return data


class PriceUnavailableError(OracleError):
    """No usable price could be obtained for the instrument."""
    pass
