"""
Delegation Service

Caller-facing entry points: prepare unsigned delegation, registration,
deregistration and reward-withdrawal transactions, and submit signed ones.

Flow per call:
    validate address / pool id -> fetch protocol parameters -> pre-flight
    checks -> build certificates -> assemble unsigned transaction
"""

import logging

from cardano_delegation.addresses import parse_address, reward_address, stake_credential, validate_pool_id
from cardano_delegation.assets import utxos_from_raw
from cardano_delegation.certificates import delegation, deregistration, registration
from cardano_delegation.chain_context import CardanoChainContext
from cardano_delegation.config import Settings, settings as default_settings
from cardano_delegation.data_service import CardanoDataService, build_providers
from cardano_delegation.epochs import EpochClock
from cardano_delegation.errors import ErrorCode, NetworkOperationError, UTXOSelectionError, ValidationError
from cardano_delegation.pools import DelegationContextValidator
from cardano_delegation.protocol_params import debug_summary, normalize
from cardano_delegation.schemas import (
    UTXO,
    ComplexityFactors,
    DelegationContext,
    ProtocolParameters,
    StakeCredential,
    UnsignedTransactionDescriptor,
    Withdrawal,
)
from cardano_delegation.security import RateLimiter
from cardano_delegation.transactions import TransactionAssembler

logger = logging.getLogger(__name__)


class DelegationService:
    """
    Prepares staking transactions for a wallet

    Args:
        data_service: Data source (failover service or a compatible fake)
        config: Settings; the network is taken from here
        assembler: Transaction assembler (defaults to the pycardano backend)
        epoch_clock: Epoch clock (defaults to wall-clock time)
    """

    def __init__(
        self,
        data_service,
        config: Settings | None = None,
        assembler: TransactionAssembler | None = None,
        epoch_clock: EpochClock | None = None,
    ):
        self.config = config or default_settings
        self.network = self.config.network
        self.data_service = data_service
        self.chain_context = CardanoChainContext(self.network)
        self.epoch_clock = epoch_clock or EpochClock(self.network)
        self.validator = DelegationContextValidator(data_service, self.network, self.epoch_clock)
        self.assembler = assembler or TransactionAssembler(self.network)

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "DelegationService":
        """Service wired to the configured providers"""
        config = config or default_settings
        rate_limiter = RateLimiter(config.rate_limit_requests, config.rate_limit_window)
        data_service = CardanoDataService(build_providers(config), rate_limiter, config)
        return cls(data_service, config)

    # ------------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------------

    async def protocol_parameters(self) -> ProtocolParameters:
        """Fetch and normalize protocol parameters; defaults when unreachable"""
        try:
            raw = await self.data_service.get_protocol_parameters()
        except NetworkOperationError as e:
            logger.warning(f"Protocol parameters unavailable, using defaults: {e.message}")
            raw = None
        params = normalize(raw)
        logger.debug(f"Protocol parameters: {debug_summary(params)}")
        return params

    async def _utxos(self, address: str) -> list[UTXO]:
        utxos = utxos_from_raw(await self.data_service.get_utxos(address), address)
        if not utxos:
            raise UTXOSelectionError.selection_failed("address has no spendable UTXOs")
        return utxos

    def _stake_address(self, address: str) -> tuple[str, StakeCredential]:
        credential = stake_credential(address, self.network)
        return reward_address(credential, self.network), credential

    # ------------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------------

    async def validate_delegation(self, address: str, pool_id: str) -> DelegationContext:
        """Run delegation pre-flight checks without building a transaction"""
        parse_address(address, self.network)
        pool_key_hash = validate_pool_id(pool_id)
        stake_address, _ = self._stake_address(address)
        params = await self.protocol_parameters()
        return await self.validator.validate(address, pool_key_hash, stake_address, params)

    async def prepare_delegation(self, address: str, pool_id: str) -> UnsignedTransactionDescriptor:
        """
        Prepare an unsigned delegation transaction

        Registers the stake key first when it is not yet registered.

        Args:
            address: Base address whose stake credential delegates
            pool_id: ``pool1...`` bech32 id or 56-hex pool key hash

        Raises:
            ValidationError: Bad address / pool id, or retired pool
            UTXOSelectionError: Insufficient funds
            TransactionBuildError: Certificate or min-UTXO violation
            NetworkOperationError: Balance or UTXO lookup failed on all providers
        """
        parse_address(address, self.network)
        pool_key_hash = validate_pool_id(pool_id)
        stake_address, credential = self._stake_address(address)

        params = await self.protocol_parameters()
        context = await self.validator.validate(address, pool_key_hash, stake_address, params)

        certificates = []
        if not context.stake_key_registered:
            certificates.append(registration(credential))
        certificates.append(delegation(credential, pool_key_hash))

        utxos = await self._utxos(address)
        descriptor = self.assembler.build(
            utxos, certificates, [], address, params=params, warnings=context.warnings
        )
        self.validator.record_delegation(stake_address)
        logger.info(
            f"Prepared delegation, active from epoch {context.activation.activation_epoch} "
            f"({len(context.warnings)} warnings)"
        )
        return descriptor

    async def prepare_registration(self, address: str) -> UnsignedTransactionDescriptor:
        """
        Prepare an unsigned stake key registration

        Raises:
            ValidationError: Bad address or key already registered
            UTXOSelectionError: Balance does not cover deposit and fee
        """
        parse_address(address, self.network)
        stake_address, credential = self._stake_address(address)
        params = await self.protocol_parameters()

        account, warnings = await self.validator.account_info(stake_address)
        if account.registered:
            raise ValidationError(ErrorCode.STAKE_KEY_ALREADY_REGISTERED, "Stake key is already registered")

        await self.validator.ensure_sufficient_balance(
            address, params, params.stake_key_deposit, ComplexityFactors(output_count=1, certificate_count=1)
        )

        utxos = await self._utxos(address)
        return self.assembler.build(
            utxos, [registration(credential)], [], address, params=params, warnings=warnings
        )

    async def prepare_deregistration(self, address: str) -> UnsignedTransactionDescriptor:
        """
        Prepare an unsigned stake key deregistration

        Withdraws outstanding rewards in the same transaction, since the
        ledger refuses to deregister an account with a reward balance.

        Raises:
            ValidationError: Bad address or key not registered
        """
        parse_address(address, self.network)
        stake_address, credential = self._stake_address(address)
        params = await self.protocol_parameters()

        account, warnings = await self.validator.account_info(stake_address)
        if not account.registered and not warnings:
            raise ValidationError(ErrorCode.STAKE_KEY_NOT_REGISTERED, "Stake key is not registered")

        refund = account.deposit if account.deposit and account.deposit != params.stake_key_deposit else None
        withdrawals = []
        if account.withdrawable_rewards > 0:
            withdrawals.append(Withdrawal(reward_address=stake_address, amount=account.withdrawable_rewards))

        utxos = await self._utxos(address)
        return self.assembler.build(
            utxos, [deregistration(credential, refund)], [], address, withdrawals, params=params, warnings=warnings
        )

    async def prepare_withdrawal(self, address: str) -> UnsignedTransactionDescriptor:
        """
        Prepare an unsigned withdrawal of all available rewards

        Raises:
            UTXOSelectionError: No rewards available
        """
        parse_address(address, self.network)
        stake_address, _ = self._stake_address(address)
        params = await self.protocol_parameters()

        account = await self.data_service.get_account_info(stake_address)
        if account.withdrawable_rewards <= 0:
            raise UTXOSelectionError(ErrorCode.INSUFFICIENT_FUNDS, "No rewards available to withdraw")

        withdrawal = Withdrawal(reward_address=stake_address, amount=account.withdrawable_rewards)
        utxos = await self._utxos(address)
        return self.assembler.build(utxos, [], [], address, [withdrawal], params=params)

    async def submit(self, signed_cbor_hex: str) -> str:
        """
        Broadcast a signed transaction

        Returns:
            Transaction hash
        """
        tx_hash = await self.data_service.broadcast_transaction(signed_cbor_hex)
        logger.info(f"Transaction submitted: {self.chain_context.get_explorer_url(tx_hash)}")
        return tx_hash
