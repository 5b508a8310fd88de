"""
Error Taxonomy

Every failure that reaches a caller is a CardanoModuleError subclass carrying
a stable ErrorCode and a scrubbed, human-readable message.

- ValidationError: malformed address / pool id / certificate shape, pool retired
- UTXOSelectionError: insufficient funds, no spendable inputs
- TransactionBuildError: certificate-sequence or min-UTXO violations
- NetworkOperationError: data-provider failures after retries and failover
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from cardano_delegation.security import sanitize_error_message

_SENSITIVE_KEY_PARTS = ("key", "secret", "mnemonic", "password", "token", "project_id")


class ErrorCode(str, Enum):
    """Stable error codes exposed to callers"""

    # UTXO selection
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    UTXO_SELECTION_FAILED = "UTXO_SELECTION_FAILED"
    INVALID_UTXO = "INVALID_UTXO"

    # Transaction building
    TRANSACTION_BUILD_FAILED = "TRANSACTION_BUILD_FAILED"
    INVALID_TRANSACTION_DATA = "INVALID_TRANSACTION_DATA"
    INVALID_CERTIFICATE_SEQUENCE = "INVALID_CERTIFICATE_SEQUENCE"
    OUTPUT_BELOW_MIN_UTXO = "OUTPUT_BELOW_MIN_UTXO"
    UNBALANCED_TRANSACTION = "UNBALANCED_TRANSACTION"
    TRANSACTION_TOO_LARGE = "TRANSACTION_TOO_LARGE"

    # Validation
    INVALID_ADDRESS = "INVALID_ADDRESS"
    UNSUPPORTED_ADDRESS = "UNSUPPORTED_ADDRESS"
    INVALID_POOL_ID = "INVALID_POOL_ID"
    POOL_RETIRED = "POOL_RETIRED"
    INVALID_CERTIFICATE = "INVALID_CERTIFICATE"
    STAKE_KEY_ALREADY_REGISTERED = "STAKE_KEY_ALREADY_REGISTERED"
    STAKE_KEY_NOT_REGISTERED = "STAKE_KEY_NOT_REGISTERED"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_FEE = "INVALID_FEE"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_ASSET = "INVALID_ASSET"
    INVALID_PROTOCOL_PARAMETERS = "INVALID_PROTOCOL_PARAMETERS"

    # Network / API
    NETWORK_ERROR = "NETWORK_ERROR"
    API_ERROR = "API_ERROR"
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    RATE_LIMITED = "RATE_LIMITED"

    # Configuration
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    MISSING_CONFIGURATION = "MISSING_CONFIGURATION"


class CardanoModuleError(Exception):
    """Base error with structured information"""

    retryable = False

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        self.code = code
        self.message = sanitize_error_message(message)
        self.context = dict(context or {})
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"

    def sanitized_info(self) -> dict[str, Any]:
        """Context with secret-looking entries redacted"""
        return {
            key: "[REDACTED]" if any(part in key.lower() for part in _SENSITIVE_KEY_PARTS) else value
            for key, value in self.context.items()
        }

    def to_dict(self) -> dict[str, Any]:
        """Serializable view for logging or an error response"""
        return {
            "error": type(self).__name__,
            "error_code": self.code.value,
            "message": self.message,
            "details": self.sanitized_info(),
            "timestamp": self.timestamp.isoformat(),
        }


class ValidationError(CardanoModuleError):
    """Malformed input or a pool that cannot be delegated to"""

    @classmethod
    def invalid_address(cls, reason: str, **context: Any) -> "ValidationError":
        return cls(ErrorCode.INVALID_ADDRESS, f"Invalid address: {reason}", context)

    @classmethod
    def invalid_pool_id(cls, reason: str, **context: Any) -> "ValidationError":
        return cls(ErrorCode.INVALID_POOL_ID, f"Invalid pool id: {reason}", context)

    @classmethod
    def invalid_input(cls, field: str, reason: str, **context: Any) -> "ValidationError":
        return cls(ErrorCode.INVALID_INPUT, f"Invalid {field}: {reason}", {"field": field, **context})


class UTXOSelectionError(CardanoModuleError):
    """Available inputs cannot cover the requested transaction"""

    @classmethod
    def insufficient_funds(cls, required: int, available: int, **context: Any) -> "UTXOSelectionError":
        return cls(
            ErrorCode.INSUFFICIENT_FUNDS,
            f"Insufficient funds: required {required} lovelace, available {available} lovelace",
            {"required": required, "available": available, **context},
        )

    @classmethod
    def selection_failed(cls, reason: str, **context: Any) -> "UTXOSelectionError":
        return cls(ErrorCode.UTXO_SELECTION_FAILED, f"UTXO selection failed: {reason}", context)


class TransactionBuildError(CardanoModuleError):
    """The transaction would be rejected by the chain"""

    @classmethod
    def build_failed(cls, reason: str, cause: BaseException | None = None, **context: Any) -> "TransactionBuildError":
        return cls(ErrorCode.TRANSACTION_BUILD_FAILED, f"Transaction build failed: {reason}", context, cause)

    @classmethod
    def too_large(cls, size: int, max_size: int) -> "TransactionBuildError":
        return cls(
            ErrorCode.TRANSACTION_TOO_LARGE,
            f"Transaction size {size} bytes exceeds maximum {max_size} bytes",
            {"size": size, "max_size": max_size},
        )


class NetworkOperationError(CardanoModuleError):
    """Data-provider failure that survived retries and failover"""

    retryable = True

    @classmethod
    def timeout(cls, operation: str, seconds: float, cause: BaseException | None = None) -> "NetworkOperationError":
        return cls(
            ErrorCode.TIMEOUT_ERROR,
            f"Operation {operation} timed out after {seconds}s",
            {"operation": operation, "timeout": seconds},
            cause,
        )
