"""
Pool and Delegation Context Validation

Pre-flight checks run before a staking transaction is built: pool status
(retired, retiring, saturated), balance sufficiency and current delegation.

Retirement and insufficient balance are hard failures. Everything else is a
warning, including lookups that fail outright.
"""

import logging

from cardano_delegation.addresses import validate_pool_id
from cardano_delegation.enums import NetworkType, PoolStatus, RiskLevel
from cardano_delegation.epochs import ACTIVATION_DELAY_EPOCHS, EpochClock
from cardano_delegation.errors import ErrorCode, NetworkOperationError, UTXOSelectionError, ValidationError
from cardano_delegation.fees import FeeEstimator
from cardano_delegation.min_utxo import ada_to_lovelace, lovelace_to_ada
from cardano_delegation.schemas import (
    AccountInfo,
    ComplexityFactors,
    DelegationContext,
    PoolAssessment,
    ProtocolParameters,
    StakePool,
)

logger = logging.getLogger(__name__)

SATURATION_LIMIT = 1.0
NEAR_SATURATION = 0.9
LOW_PLEDGE = ada_to_lovelace(100_000)
HIGH_MARGIN = 0.05
HIGH_FIXED_COST = ada_to_lovelace(500)
TARGET_ROA = 3.0  # percent

MIN_DELEGATION_AMOUNT = {
    NetworkType.MAINNET: ada_to_lovelace(5),
    NetworkType.TESTNET: ada_to_lovelace(2),
    NetworkType.PREPROD: ada_to_lovelace(1),
    NetworkType.PREVIEW: ada_to_lovelace(1),
}


class PoolAssessor:
    """Classifies a pool snapshot into status, risk and warnings"""

    def assess(self, pool: StakePool, current_epoch: int) -> PoolAssessment:
        warnings: list[str] = []
        risk = RiskLevel.MEDIUM
        score = 0.0

        if pool.retired or (pool.retiring_epoch is not None and pool.retiring_epoch <= current_epoch):
            return PoolAssessment(
                status=PoolStatus.RETIRED,
                risk_level=RiskLevel.HIGH,
                performance_score=0,
                warnings=("Pool is retired and cannot accept new delegations",),
            )

        status = PoolStatus.ACTIVE
        if pool.retiring_epoch is not None and pool.retiring_epoch <= current_epoch + ACTIVATION_DELAY_EPOCHS:
            status = PoolStatus.RETIRING
            risk = RiskLevel.HIGH
            warnings.append(f"Pool retires in epoch {pool.retiring_epoch}, before or as the delegation activates")

        if pool.saturation > SATURATION_LIMIT:
            if status == PoolStatus.ACTIVE:
                status = PoolStatus.SATURATED
            warnings.append(f"Pool is oversaturated ({pool.saturation:.1%}), reduced rewards expected")
        elif pool.saturation > NEAR_SATURATION:
            warnings.append(f"Pool is near saturation ({pool.saturation:.1%})")

        if pool.roa is not None:
            score = min(100.0, max(0.0, pool.roa / TARGET_ROA * 100))
            if score < 50:
                warnings.append("Pool has below-average returns")
            elif score > 80 and risk != RiskLevel.HIGH and status == PoolStatus.ACTIVE:
                risk = RiskLevel.LOW

        if pool.pledge < LOW_PLEDGE:
            warnings.append(f"Pool has low pledge ({lovelace_to_ada(pool.pledge):,.0f} ADA)")
        if pool.margin > HIGH_MARGIN:
            warnings.append(f"Pool has high margin ({pool.margin:.1%})")
        if pool.fixed_cost > HIGH_FIXED_COST:
            warnings.append(f"Pool has high fixed cost ({lovelace_to_ada(pool.fixed_cost):,.0f} ADA)")

        return PoolAssessment(status=status, risk_level=risk, performance_score=score, warnings=tuple(warnings))


def _same_pool(current: str | None, pool_key_hash: str) -> bool:
    if not current:
        return False
    try:
        return validate_pool_id(current) == pool_key_hash
    except ValidationError:
        return False


class DelegationContextValidator:
    """
    Pre-flight validation for staking actions

    Args:
        data_service: Failover data service (or any object with the same
            async methods)
        network: Configured network
        epoch_clock: Clock for epoch and activation timing
    """

    def __init__(self, data_service, network: NetworkType, epoch_clock: EpochClock | None = None):
        self.data_service = data_service
        self.network = network
        self.epoch_clock = epoch_clock or EpochClock(network)
        self.assessor = PoolAssessor()
        self._last_delegation: dict[str, float] = {}

    async def current_epoch(self) -> int:
        try:
            tip = await self.data_service.get_chain_tip()
        except NetworkOperationError as e:
            logger.warning(f"Chain tip unavailable: {e.message}")
            tip = None
        return self.epoch_clock.current_epoch(tip)

    async def account_info(self, stake_address: str) -> tuple[AccountInfo, list[str]]:
        """Account state; unknown state is reported as unregistered with a warning"""
        try:
            return await self.data_service.get_account_info(stake_address), []
        except NetworkOperationError as e:
            logger.warning(f"Account lookup failed: {e.message}")
            return AccountInfo(stake_address=stake_address), [
                "Could not determine stake key registration; assuming unregistered"
            ]

    def record_delegation(self, stake_address: str) -> None:
        """Remember when a delegation was prepared for ``stake_address``"""
        self._last_delegation[stake_address] = self.epoch_clock.now()

    def timing_warnings(self, stake_address: str) -> list[str]:
        """Late-epoch and repeated-delegation advice; never blocks"""
        warnings = []
        try:
            timing = self.epoch_clock.optimal_timing()
        except ValueError:
            timing = None
        if timing is not None and timing.recommend_wait:
            minutes = int(timing.time_until_next_epoch.total_seconds() // 60)
            warnings.append(f"{timing.reason} ({minutes} minutes left in epoch {timing.current_epoch})")

        last = self._last_delegation.get(stake_address)
        min_interval = self.epoch_clock.min_seconds_between_delegations
        elapsed = self.epoch_clock.now() - last if last is not None else None
        if elapsed is not None and elapsed < min_interval:
            warnings.append(
                f"A delegation for this stake key was prepared {elapsed:.0f}s ago; "
                f"allow {min_interval}s between delegations"
            )
        return warnings

    async def ensure_sufficient_balance(
        self,
        address: str,
        params: ProtocolParameters,
        deposit: int,
        factors: ComplexityFactors | None = None,
    ) -> tuple[int, int]:
        """
        Hard balance check: balance must exceed deposit plus a fee buffer

        Returns:
            Tuple of (balance, required)

        Raises:
            UTXOSelectionError: INSUFFICIENT_FUNDS
            NetworkOperationError: If the balance cannot be fetched
        """
        balance = await self.data_service.get_balance(address)
        fee_buffer = FeeEstimator(params).with_buffer(1, factors or ComplexityFactors(output_count=1))
        required = deposit + fee_buffer
        if balance <= required:
            raise UTXOSelectionError.insufficient_funds(required, balance, deposit=deposit, fee_buffer=fee_buffer)
        return balance, required

    async def validate(
        self,
        address: str,
        pool_key_hash: str,
        stake_address: str,
        params: ProtocolParameters,
    ) -> DelegationContext:
        """
        Validate a delegation of ``address`` to ``pool_key_hash``

        Raises:
            ValidationError: POOL_RETIRED
            UTXOSelectionError: INSUFFICIENT_FUNDS
            NetworkOperationError: If the balance cannot be fetched
        """
        warnings: list[str] = []
        current_epoch = await self.current_epoch()

        pool = None
        status, risk = PoolStatus.UNKNOWN, RiskLevel.MEDIUM
        try:
            pool = await self.data_service.get_stake_pool_details(pool_key_hash)
        except NetworkOperationError as e:
            logger.warning(f"Pool lookup failed, proceeding without pool checks: {e.message}")
            warnings.append("Pool details unavailable; pool status could not be verified")

        if pool is not None:
            assessment = self.assessor.assess(pool, current_epoch)
            if assessment.status == PoolStatus.RETIRED:
                raise ValidationError(
                    ErrorCode.POOL_RETIRED,
                    "Pool is retired and cannot accept new delegations",
                    {"retiring_epoch": pool.retiring_epoch, "current_epoch": current_epoch},
                )
            status, risk = assessment.status, assessment.risk_level
            warnings.extend(assessment.warnings)

        account, account_warnings = await self.account_info(stake_address)
        warnings.extend(account_warnings)
        if _same_pool(account.pool_id, pool_key_hash):
            warnings.append("Address is already delegated to this pool")
        warnings.extend(self.timing_warnings(stake_address))

        deposit = 0 if account.registered else params.stake_key_deposit
        certificate_count = 1 if account.registered else 2
        balance, required = await self.ensure_sufficient_balance(
            address, params, deposit, ComplexityFactors(output_count=1, certificate_count=certificate_count)
        )

        if balance - required < MIN_DELEGATION_AMOUNT[self.network]:
            warnings.append(
                f"Remaining stake after fees is below the recommended "
                f"{lovelace_to_ada(MIN_DELEGATION_AMOUNT[self.network]):g} ADA"
            )

        for warning in warnings:
            logger.warning(f"Delegation pre-flight: {warning}")

        return DelegationContext(
            pool_id=pool_key_hash,
            pool=pool,
            pool_status=status,
            risk_level=risk,
            stake_key_registered=account.registered,
            current_pool_id=account.pool_id,
            balance=balance,
            required_balance=required,
            current_epoch=current_epoch,
            activation=self.epoch_clock.activation_timing(current_epoch),
            warnings=tuple(warnings),
        )
