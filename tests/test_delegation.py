"""
Delegation Service Tests

Caller-facing flows against an offline provider and the real pycardano
backend.
"""

import pytest

from cardano_delegation.delegation import DelegationService
from cardano_delegation.enums import CertificateKind, NetworkType
from cardano_delegation.epochs import EpochClock
from cardano_delegation.errors import ErrorCode, UTXOSelectionError, ValidationError
from cardano_delegation.protocol_params import DEFAULT_PROTOCOL_PARAMETERS
from cardano_delegation.schemas import AccountInfo
from tests.factories import CardanoAddressFactory, PoolFactory


@pytest.fixture
def delegation_service(data_service, testnet_settings):
    return DelegationService(data_service, testnet_settings, epoch_clock=EpochClock(NetworkType.TESTNET))


def kinds(descriptor):
    return [cert.kind for cert in descriptor.certificates]


class TestPrepareDelegation:
    """Tests for prepare_delegation"""

    @pytest.mark.asyncio
    async def test_unregistered_key_registers_first(self, delegation_service, base_address, pool_bech32):
        descriptor = await delegation_service.prepare_delegation(base_address, pool_bech32)

        assert kinds(descriptor) == [CertificateKind.STAKE_KEY_REGISTRATION, CertificateKind.STAKE_DELEGATION]
        assert descriptor.deposits == DEFAULT_PROTOCOL_PARAMETERS.stake_key_deposit
        assert descriptor.is_balanced

    @pytest.mark.asyncio
    async def test_registered_key_only_delegates(self, delegation_service, provider, base_address, stake_address, pool_key_hash):
        provider.account = AccountInfo(stake_address=stake_address, registered=True)

        descriptor = await delegation_service.prepare_delegation(base_address, pool_key_hash)

        assert kinds(descriptor) == [CertificateKind.STAKE_DELEGATION]
        assert descriptor.certificates[0].pool_key_hash == pool_key_hash
        assert descriptor.deposits == 0

    @pytest.mark.asyncio
    async def test_saturated_pool_warning_on_descriptor(self, delegation_service, provider, base_address, pool_key_hash):
        provider.pools[pool_key_hash] = PoolFactory.create_pool(pool_key_hash, saturation=1.05)

        descriptor = await delegation_service.prepare_delegation(base_address, pool_key_hash)

        assert any("oversaturated (105.0%)" in warning for warning in descriptor.warnings)

    @pytest.mark.asyncio
    async def test_retired_pool(self, delegation_service, provider, base_address, pool_key_hash):
        provider.pools[pool_key_hash] = PoolFactory.create_pool(pool_key_hash, retired=True)

        with pytest.raises(ValidationError) as exc_info:
            await delegation_service.prepare_delegation(base_address, pool_key_hash)

        assert exc_info.value.code == ErrorCode.POOL_RETIRED

    @pytest.mark.asyncio
    async def test_invalid_pool_id(self, delegation_service, provider, base_address):
        with pytest.raises(ValidationError) as exc_info:
            await delegation_service.prepare_delegation(base_address, "pool1" + "a" * 58)

        assert exc_info.value.code == ErrorCode.INVALID_POOL_ID
        assert provider.calls == {}

    @pytest.mark.asyncio
    async def test_mainnet_address_on_testnet(self, delegation_service, provider, pool_key_hash):
        address = CardanoAddressFactory.create_base_address(mainnet=True)

        with pytest.raises(ValidationError) as exc_info:
            await delegation_service.prepare_delegation(address, pool_key_hash)

        assert exc_info.value.code == ErrorCode.INVALID_ADDRESS
        assert provider.calls == {}

    @pytest.mark.asyncio
    async def test_pointer_address_unsupported(self, delegation_service, pool_key_hash):
        with pytest.raises(ValidationError) as exc_info:
            await delegation_service.prepare_delegation(CardanoAddressFactory.create_pointer_address(), pool_key_hash)

        assert exc_info.value.code == ErrorCode.UNSUPPORTED_ADDRESS

    @pytest.mark.asyncio
    async def test_parameters_unavailable_uses_defaults(self, delegation_service, provider, base_address, pool_key_hash):
        provider.fail = {"get_protocol_parameters"}

        descriptor = await delegation_service.prepare_delegation(base_address, pool_key_hash)

        assert descriptor.deposits == DEFAULT_PROTOCOL_PARAMETERS.stake_key_deposit
        assert descriptor.is_balanced

    @pytest.mark.asyncio
    async def test_validate_delegation(self, delegation_service, base_address, pool_bech32, pool_key_hash):
        context = await delegation_service.validate_delegation(base_address, pool_bech32)

        assert context.pool_id == pool_key_hash
        assert context.activation.activation_epoch == context.current_epoch + 2
        assert not context.activation.is_immediately_active

    @pytest.mark.asyncio
    async def test_repeated_delegation_warns(self, data_service, testnet_settings, base_address, pool_key_hash):
        clock = EpochClock(NetworkType.TESTNET, clock=lambda: 1_654_041_600 + 86_400 * 10 + 3_600)
        service = DelegationService(data_service, testnet_settings, epoch_clock=clock)

        first = await service.prepare_delegation(base_address, pool_key_hash)
        second = await service.prepare_delegation(base_address, pool_key_hash)

        assert not any("between delegations" in warning for warning in first.warnings)
        assert any("prepared 0s ago" in warning for warning in second.warnings)


class TestPrepareRegistration:
    @pytest.mark.asyncio
    async def test_registration(self, delegation_service, base_address):
        descriptor = await delegation_service.prepare_registration(base_address)

        assert kinds(descriptor) == [CertificateKind.STAKE_KEY_REGISTRATION]
        assert descriptor.is_balanced

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, delegation_service, provider, base_address):
        provider.balance = 1_000_000

        with pytest.raises(UTXOSelectionError) as exc_info:
            await delegation_service.prepare_registration(base_address)

        assert exc_info.value.code == ErrorCode.INSUFFICIENT_FUNDS
        assert "get_utxos" not in provider.calls

    @pytest.mark.asyncio
    async def test_already_registered(self, delegation_service, provider, base_address, stake_address):
        provider.account = AccountInfo(stake_address=stake_address, registered=True)

        with pytest.raises(ValidationError) as exc_info:
            await delegation_service.prepare_registration(base_address)

        assert exc_info.value.code == ErrorCode.STAKE_KEY_ALREADY_REGISTERED


class TestPrepareDeregistration:
    @pytest.mark.asyncio
    async def test_deregistration_withdraws_rewards(self, delegation_service, provider, base_address, stake_address):
        provider.account = AccountInfo(stake_address=stake_address, registered=True, withdrawable_rewards=1_500_000)

        descriptor = await delegation_service.prepare_deregistration(base_address)

        assert kinds(descriptor) == [CertificateKind.STAKE_KEY_DEREGISTRATION]
        assert descriptor.refunds == DEFAULT_PROTOCOL_PARAMETERS.stake_key_deposit
        assert descriptor.withdrawals[0].reward_address == stake_address
        assert descriptor.total_withdrawals == 1_500_000
        assert descriptor.is_balanced

    @pytest.mark.asyncio
    async def test_recorded_deposit_refunded(self, delegation_service, provider, base_address, stake_address):
        provider.account = AccountInfo(stake_address=stake_address, registered=True, deposit=3_000_000)

        descriptor = await delegation_service.prepare_deregistration(base_address)

        assert kinds(descriptor) == [CertificateKind.STAKE_DEREGISTRATION]
        assert descriptor.refunds == 3_000_000

    @pytest.mark.asyncio
    async def test_not_registered(self, delegation_service, base_address):
        with pytest.raises(ValidationError) as exc_info:
            await delegation_service.prepare_deregistration(base_address)

        assert exc_info.value.code == ErrorCode.STAKE_KEY_NOT_REGISTERED


class TestPrepareWithdrawal:
    @pytest.mark.asyncio
    async def test_withdrawal(self, delegation_service, provider, base_address, stake_address):
        provider.account = AccountInfo(stake_address=stake_address, registered=True, withdrawable_rewards=4_000_000)

        descriptor = await delegation_service.prepare_withdrawal(base_address)

        assert descriptor.certificates == ()
        assert descriptor.total_withdrawals == 4_000_000
        assert descriptor.change_output.lovelace == 10_000_000 + 4_000_000 - descriptor.fee

    @pytest.mark.asyncio
    async def test_no_rewards(self, delegation_service, provider, base_address, stake_address):
        provider.account = AccountInfo(stake_address=stake_address, registered=True)

        with pytest.raises(UTXOSelectionError) as exc_info:
            await delegation_service.prepare_withdrawal(base_address)

        assert exc_info.value.code == ErrorCode.INSUFFICIENT_FUNDS


class TestSubmit:
    @pytest.mark.asyncio
    async def test_submit(self, delegation_service, provider):
        assert await delegation_service.submit("84a400") == "f" * 64
        assert provider.submitted == ["84a400"]
