"""
Shared Enums

Single source of truth for enums used across schemas, validators
and the transaction pipeline.
"""

from enum import Enum


# ============================================================================
# Network Enums
# ============================================================================


class NetworkType(str, Enum):
    """Blockchain network types"""

    MAINNET = "mainnet"
    TESTNET = "testnet"
    PREPROD = "preprod"
    PREVIEW = "preview"

    @property
    def is_mainnet(self) -> bool:
        return self is NetworkType.MAINNET


class ProviderName(str, Enum):
    """Chain data providers, in default failover order"""

    KOIOS = "koios"
    BLOCKFROST = "blockfrost"


# ============================================================================
# Credential / Address Enums
# ============================================================================


class CredentialKind(str, Enum):
    """Stake credential origin"""

    KEY = "key"
    SCRIPT = "script"


class AddressKind(str, Enum):
    """
    Shelley address kinds relevant to output sizing

    - BASE: payment + stake credential (two hashes)
    - POINTER: payment credential + chain pointer
    - ENTERPRISE: payment credential only
    - REWARD: stake credential only
    """

    BASE = "base"
    POINTER = "pointer"
    ENTERPRISE = "enterprise"
    REWARD = "reward"


# ============================================================================
# Certificate Enums
# ============================================================================


class CertificateKind(str, Enum):
    """
    Stake certificate variants

    STAKE_KEY_* are the pre-Conway certificates (deposit taken from protocol
    parameters); STAKE_REGISTRATION / STAKE_DEREGISTRATION are the Conway
    variants carrying an explicit deposit.
    """

    STAKE_KEY_REGISTRATION = "stake_key_registration"
    STAKE_KEY_DEREGISTRATION = "stake_key_deregistration"
    STAKE_DELEGATION = "stake_delegation"
    STAKE_REGISTRATION = "stake_registration"
    STAKE_DEREGISTRATION = "stake_deregistration"

    @property
    def is_registration(self) -> bool:
        return self in (CertificateKind.STAKE_KEY_REGISTRATION, CertificateKind.STAKE_REGISTRATION)

    @property
    def is_deregistration(self) -> bool:
        return self in (CertificateKind.STAKE_KEY_DEREGISTRATION, CertificateKind.STAKE_DEREGISTRATION)

    @property
    def is_delegation(self) -> bool:
        return self is CertificateKind.STAKE_DELEGATION


# ============================================================================
# Fee / Pool Enums
# ============================================================================


class ComplexityTier(str, Enum):
    """Coarse script complexity used by fee estimation"""

    SIMPLE = "simple"
    MODERATE = "moderate"
    COMPLEX = "complex"


class PoolStatus(str, Enum):
    """Stake pool lifecycle status as seen by the delegation validator"""

    ACTIVE = "active"
    RETIRING = "retiring"
    RETIRED = "retired"
    SATURATED = "saturated"
    UNKNOWN = "unknown"


class RiskLevel(str, Enum):
    """Delegation risk assessment"""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
