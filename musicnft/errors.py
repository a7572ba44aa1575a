"""
Failure taxonomy for the toolkit.

These exceptions are not raised across the public API; they travel inside
``Result.err`` and only surface as exceptions when a caller calls
``Result.unwrap()``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class MusicNFTError(Exception):
    """
    Base error carrying structured details.

    **Attributes:**
        error_type (Optional[str]): Short category label (e.g. "Server error",
            "Timeout", "Missing field").
        cause (Optional[BaseException]): Underlying exception, if any.
        details (Dict[str, Any]): Extra context (endpoint, signature, ...).
    """

    default_type = "Toolkit error"

    def __init__(
        self,
        message: str,
        error_type: Optional[str] = None,
        cause: Optional[BaseException] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.error_type = error_type or self.default_type
        self.cause = cause
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a plain dict for logging or API responses."""
        result: Dict[str, Any] = {
            "error": self.error_type,
            "message": str(self),
        }
        if self.cause is not None:
            result["cause"] = repr(self.cause)
        if self.details:
            result["details"] = self.details
        return result


class NetworkFailure(MusicNFTError):
    """HTTP/RPC endpoint unreachable or answered with a non-2xx status."""

    default_type = "Network failure"


class MalformedResponse(MusicNFTError):
    """A response was missing an expected field or could not be decoded."""

    default_type = "Malformed response"


class ValidationFailure(MusicNFTError):
    """A required caller-supplied parameter was missing or invalid."""

    default_type = "Validation failure"


class PriceLookupError(MusicNFTError):
    """Cost or token price could not be determined."""

    default_type = "Price lookup failed"


class NoInstructionsError(MusicNFTError):
    """The swap aggregator returned nothing usable (no route / no liquidity)."""

    default_type = "No swap instructions"


class SwapError(MusicNFTError):
    """The native-to-token swap did not complete."""

    default_type = "Swap failed"


class SubmissionRejected(MusicNFTError):
    """The RPC node refused the raw transaction at send time."""

    default_type = "Submission rejected"


class TransactionFailed(MusicNFTError):
    """The transaction landed but its status reports an on-chain error."""

    default_type = "Transaction failed"


class ConfirmationTimeout(MusicNFTError):
    """
    No settled status was observed within the bounded poll loop.

    The transaction may still land later; callers must treat this as an
    indeterminate settlement and reconcile against the signature in
    ``details["signature"]``.
    """

    default_type = "Confirmation timeout"


class SettlementCancelled(MusicNFTError):
    """The caller's cancel event was set while a settlement was in flight."""

    default_type = "Cancelled"
