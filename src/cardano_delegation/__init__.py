"""
Cardano Delegation Library

Wallet-side staking engine: certificate validation, min-UTXO and fee
computation, delegation pre-flight checks and unsigned transaction assembly
over failover chain data providers.
"""

from .chain_context import CardanoChainContext, PyCardanoBackend
from .config import Settings, configure_logging, settings
from .data_service import BlockfrostProvider, CardanoDataService, KoiosProvider
from .delegation import DelegationService
from .epochs import EpochClock
from .errors import (
    CardanoModuleError,
    ErrorCode,
    NetworkOperationError,
    TransactionBuildError,
    UTXOSelectionError,
    ValidationError,
)
from .fees import FeeEstimator
from .min_utxo import MinUtxoRule
from .protocol_params import normalize as normalize_protocol_parameters
from .security import RateLimiter
from .transactions import TransactionAssembler


__all__ = [
    "DelegationService",
    "TransactionAssembler",
    "CardanoChainContext",
    "PyCardanoBackend",
    "CardanoDataService",
    "KoiosProvider",
    "BlockfrostProvider",
    "EpochClock",
    "FeeEstimator",
    "MinUtxoRule",
    "RateLimiter",
    "normalize_protocol_parameters",
    "Settings",
    "settings",
    "configure_logging",
    "ErrorCode",
    "CardanoModuleError",
    "ValidationError",
    "UTXOSelectionError",
    "TransactionBuildError",
    "NetworkOperationError",
]
