"""
Value Objects

Canonical, immutable records passed between the pipeline stages. All
amounts are integer lovelace; hashes are lowercase hex.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cardano_delegation.enums import (
    CertificateKind,
    ComplexityTier,
    CredentialKind,
    PoolStatus,
    RiskLevel,
)

HEX_64 = r"^[0-9a-f]{64}$"
HEX_56 = r"^[0-9a-f]{56}$"


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


# ============================================================================
# Protocol Parameters
# ============================================================================


class ProtocolParameters(FrozenModel):
    """
    Canonical protocol parameters

    Defaults are the mainnet values used whenever a provider response is
    missing or unusable.
    """

    min_fee_a: int = Field(default=44, ge=0, description="Fee per transaction byte")
    min_fee_b: int = Field(default=155_381, ge=0, description="Fixed fee per transaction")
    stake_key_deposit: int = Field(default=2_000_000, ge=1_000_000)
    pool_deposit: int = Field(default=500_000_000, ge=0)
    lovelace_per_utxo_byte: int = Field(default=4_310, ge=0)
    lovelace_per_utxo_word: int = Field(default=34_482, ge=0)
    max_tx_size: int = Field(default=16_384, ge=1_000)
    max_value_size: int = Field(default=5_000, ge=0)
    collateral_percent: int = Field(default=150, ge=0)
    max_collateral_inputs: int = Field(default=3, ge=0)
    price_mem: float = Field(default=0.0577, ge=0)
    price_step: float = Field(default=0.0000721, ge=0)
    min_fee_ref_script_cost_per_byte: float = Field(default=15, ge=0)


# ============================================================================
# UTXOs and outputs
# ============================================================================


class UTXO(FrozenModel):
    """Unspent output owned by the wallet"""

    tx_hash: str = Field(pattern=HEX_64)
    output_index: int = Field(ge=0)
    address: str
    lovelace: int = Field(gt=0)
    assets: dict[str, int] = Field(default_factory=dict, description="asset_id -> quantity")

    @field_validator("tx_hash", mode="before")
    @classmethod
    def lowercase_hash(cls, value):
        return value.lower() if isinstance(value, str) else value

    @field_validator("assets")
    @classmethod
    def positive_quantities(cls, value: dict[str, int]) -> dict[str, int]:
        if any(quantity <= 0 for quantity in value.values()):
            raise ValueError("asset quantities must be positive")
        return value

    @property
    def ref(self) -> str:
        return f"{self.tx_hash}#{self.output_index}"


class TransactionOutputSpec(FrozenModel):
    """Requested or computed transaction output"""

    address: str
    lovelace: int = Field(ge=0)
    assets: dict[str, int] = Field(default_factory=dict)


class Withdrawal(FrozenModel):
    """Reward withdrawal from a stake (reward) address"""

    reward_address: str
    amount: int = Field(gt=0)


# ============================================================================
# Certificates
# ============================================================================


class StakeCredential(FrozenModel):
    """Stake credential hash (blake2b-224) and its origin"""

    hash: str = Field(pattern=HEX_56)
    kind: CredentialKind = CredentialKind.KEY

    @field_validator("hash", mode="before")
    @classmethod
    def lowercase_hash(cls, value):
        return value.lower() if isinstance(value, str) else value


class Certificate(FrozenModel):
    """
    Stake certificate, discriminated by ``kind``

    ``pool_key_hash`` is required on delegations and forbidden elsewhere.
    ``deposit`` may only be set on registration / deregistration kinds; when
    absent the protocol parameter deposit applies.
    """

    kind: CertificateKind
    stake_credential: StakeCredential
    pool_key_hash: str | None = Field(default=None, pattern=HEX_56)
    deposit: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_payload(self) -> "Certificate":
        if self.kind.is_delegation and self.pool_key_hash is None:
            raise ValueError("delegation certificate requires a pool key hash")
        if not self.kind.is_delegation and self.pool_key_hash is not None:
            raise ValueError(f"{self.kind.value} certificate does not carry a pool")
        if self.deposit is not None and self.kind.is_delegation:
            raise ValueError("delegation certificate does not carry a deposit")
        return self


# ============================================================================
# Chain state
# ============================================================================


class StakePool(FrozenModel):
    """Stake pool snapshot from a data provider"""

    pool_id: str
    ticker: str | None = None
    pledge: int = Field(default=0, ge=0)
    margin: float = Field(default=0.0, ge=0, le=1)
    fixed_cost: int = Field(default=340_000_000, ge=0)
    saturation: float = Field(default=0.0, ge=0)
    active_stake: int = Field(default=0, ge=0)
    live_stake: int = Field(default=0, ge=0)
    blocks_lifetime: int = Field(default=0, ge=0)
    roa: float | None = None
    retired: bool = False
    retiring_epoch: int | None = None


class AccountInfo(FrozenModel):
    """Registration and delegation state of a stake address"""

    stake_address: str
    registered: bool = False
    pool_id: str | None = None
    withdrawable_rewards: int = Field(default=0, ge=0)
    deposit: int | None = None


class ChainTip(FrozenModel):
    epoch: int | None = None
    slot: int | None = None


# ============================================================================
# Fees / timing / validation results
# ============================================================================


class ExecutionUnits(FrozenModel):
    mem: int = Field(ge=0)
    steps: int = Field(ge=0)


class FeeBreakdown(FrozenModel):
    """Fee estimate split into its components"""

    size_estimate: int
    base_fee: int
    token_surcharge: int = 0
    metadata_surcharge: int = 0
    script_surcharge: int = 0
    is_fallback: bool = False

    @property
    def total(self) -> int:
        return self.base_fee + self.token_surcharge + self.metadata_surcharge + self.script_surcharge


class ActivationTiming(FrozenModel):
    """When a delegation submitted now becomes active"""

    current_epoch: int
    activation_epoch: int
    epochs_until_active: int
    is_immediately_active: bool = False
    rewards_epoch: int
    activation_time: datetime | None = None


class PoolAssessment(FrozenModel):
    status: PoolStatus
    risk_level: RiskLevel
    performance_score: float = Field(ge=0, le=100)
    warnings: tuple[str, ...] = ()


class DelegationContext(FrozenModel):
    """Result of delegation pre-flight validation"""

    pool_id: str
    pool: StakePool | None = None
    pool_status: PoolStatus = PoolStatus.UNKNOWN
    risk_level: RiskLevel = RiskLevel.MEDIUM
    stake_key_registered: bool = False
    current_pool_id: str | None = None
    balance: int = 0
    required_balance: int = 0
    current_epoch: int
    activation: ActivationTiming
    warnings: tuple[str, ...] = ()


# ============================================================================
# Transactions
# ============================================================================


class BuiltTransaction(FrozenModel):
    """Result handed back by a chain backend"""

    cbor_hex: str
    tx_hash: str = Field(pattern=HEX_64)
    inputs: tuple[UTXO, ...]
    outputs: tuple[TransactionOutputSpec, ...]
    change_output: TransactionOutputSpec | None = None
    fee: int = Field(ge=0)


class UnsignedTransactionDescriptor(FrozenModel):
    """
    Fully specified unsigned transaction, ready for signing

    ``outputs`` includes the change output when there is one.
    """

    inputs: tuple[UTXO, ...]
    outputs: tuple[TransactionOutputSpec, ...]
    certificates: tuple[Certificate, ...] = ()
    withdrawals: tuple[Withdrawal, ...] = ()
    fee: int = Field(ge=0)
    deposits: int = Field(default=0, ge=0)
    refunds: int = Field(default=0, ge=0)
    change_output: TransactionOutputSpec | None = None
    serialized_body: str
    body_hash: str = Field(pattern=HEX_64)
    warnings: tuple[str, ...] = ()

    @property
    def total_input(self) -> int:
        return sum(utxo.lovelace for utxo in self.inputs)

    @property
    def total_output(self) -> int:
        return sum(output.lovelace for output in self.outputs)

    @property
    def total_withdrawals(self) -> int:
        return sum(withdrawal.amount for withdrawal in self.withdrawals)

    @property
    def is_balanced(self) -> bool:
        consumed = self.total_input + self.total_withdrawals + self.refunds
        produced = self.total_output + self.fee + self.deposits
        return consumed == produced


class ComplexityFactors(FrozenModel):
    """Inputs to fee estimation beyond the input count"""

    output_count: int = Field(default=2, ge=0)
    certificate_count: int = Field(default=0, ge=0)
    native_tokens: int = Field(default=0, ge=0)
    metadata_size: int = Field(default=0, ge=0)
    tier: ComplexityTier = ComplexityTier.SIMPLE
    execution_units: ExecutionUnits | None = None
