"""
Address and Pool Id Validation Tests
"""

import pytest

from cardano_delegation.addresses import (
    address_kind,
    parse_address,
    pool_id_to_bech32,
    reward_address,
    stake_credential,
    validate_pool_id,
)
from cardano_delegation.enums import AddressKind, CredentialKind, NetworkType
from cardano_delegation.errors import ErrorCode, ValidationError
from tests.factories import CardanoAddressFactory


class TestParseAddress:
    """Tests for network-aware address validation"""

    def test_testnet_base_address(self, base_address):
        parsed = parse_address(base_address, NetworkType.TESTNET)
        assert str(parsed) == base_address

    @pytest.mark.parametrize("network", [NetworkType.PREPROD, NetworkType.PREVIEW])
    def test_testnet_address_valid_on_test_networks(self, base_address, network):
        parse_address(base_address, network)

    def test_mainnet_address(self):
        address = CardanoAddressFactory.create_base_address(mainnet=True)
        assert address.startswith("addr1")
        parse_address(address, NetworkType.MAINNET)

    def test_mainnet_address_rejected_on_testnet(self):
        address = CardanoAddressFactory.create_base_address(mainnet=True)

        with pytest.raises(ValidationError) as exc_info:
            parse_address(address, NetworkType.TESTNET)

        assert exc_info.value.code == ErrorCode.INVALID_ADDRESS

    def test_testnet_address_rejected_on_mainnet(self, base_address):
        with pytest.raises(ValidationError) as exc_info:
            parse_address(base_address, NetworkType.MAINNET)
        assert exc_info.value.code == ErrorCode.INVALID_ADDRESS

    @pytest.mark.parametrize("address", ["", "   ", None, "addr_test1qqqqqqqq", "addr_test1" + "q" * 300])
    def test_malformed_addresses(self, address):
        with pytest.raises(ValidationError) as exc_info:
            parse_address(address, NetworkType.TESTNET)
        assert exc_info.value.code == ErrorCode.INVALID_ADDRESS

    def test_error_message_does_not_leak_address(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_address("addr_test1qqqqqqqq", NetworkType.TESTNET)
        assert "addr_test1" not in str(exc_info.value)


class TestAddressKind:
    def test_kinds(self, base_address, stake_address):
        assert address_kind(base_address) == AddressKind.BASE
        assert address_kind(CardanoAddressFactory.create_enterprise_address()) == AddressKind.ENTERPRISE
        assert address_kind(CardanoAddressFactory.create_pointer_address()) == AddressKind.POINTER
        assert address_kind(stake_address) == AddressKind.REWARD


class TestStakeCredential:
    """Tests for stake credential extraction"""

    def test_key_credential(self, base_address):
        credential = stake_credential(base_address, NetworkType.TESTNET)
        assert credential.hash == "b" * 56
        assert credential.kind == CredentialKind.KEY

    def test_script_credential(self):
        credential = stake_credential(CardanoAddressFactory.create_script_stake_address(), NetworkType.TESTNET)
        assert credential.hash == "d" * 56
        assert credential.kind == CredentialKind.SCRIPT

    def test_reward_address_has_credential(self, stake_address):
        credential = stake_credential(stake_address, NetworkType.TESTNET)
        assert credential.hash == "b" * 56

    def test_enterprise_address_has_no_stake_part(self):
        with pytest.raises(ValidationError) as exc_info:
            stake_credential(CardanoAddressFactory.create_enterprise_address(), NetworkType.TESTNET)
        assert exc_info.value.code == ErrorCode.INVALID_ADDRESS

    def test_pointer_address_unsupported(self):
        with pytest.raises(ValidationError) as exc_info:
            stake_credential(CardanoAddressFactory.create_pointer_address(), NetworkType.TESTNET)
        assert exc_info.value.code == ErrorCode.UNSUPPORTED_ADDRESS

    def test_reward_address(self, credential, stake_address):
        assert reward_address(credential, NetworkType.TESTNET) == stake_address
        assert reward_address(credential, NetworkType.MAINNET).startswith("stake1")


class TestValidatePoolId:
    """Tests for pool id validation"""

    def test_hex_pool_id(self, pool_key_hash):
        assert validate_pool_id(pool_key_hash) == pool_key_hash
        assert validate_pool_id(pool_key_hash.upper()) == pool_key_hash

    def test_bech32_pool_id(self, pool_key_hash, pool_bech32):
        assert pool_bech32.startswith("pool1")
        assert len(pool_bech32) == 56
        assert validate_pool_id(pool_bech32) == pool_key_hash

    def test_real_mainnet_pool_id(self):
        key_hash = validate_pool_id("pool1pu5jlj4q9w9jlxeu370a3c9myx47md5j5m2str0naunn2q3lkdy")
        assert len(key_hash) == 56
        assert pool_id_to_bech32(key_hash) == "pool1pu5jlj4q9w9jlxeu370a3c9myx47md5j5m2str0naunn2q3lkdy"

    def test_bad_checksum(self, pool_bech32):
        corrupted = pool_bech32[:-1] + ("q" if pool_bech32[-1] != "q" else "p")

        with pytest.raises(ValidationError) as exc_info:
            validate_pool_id(corrupted)

        assert exc_info.value.code == ErrorCode.INVALID_POOL_ID

    @pytest.mark.parametrize(
        "pool_id",
        [
            "",
            None,
            "pool123",
            "pool1" + "a" * 58,
            "pool1" + "a" * 50,
            "c" * 55,
            "g" * 56,
            "stake_test1" + "q" * 45,
        ],
    )
    def test_invalid_pool_ids(self, pool_id):
        with pytest.raises(ValidationError) as exc_info:
            validate_pool_id(pool_id)
        assert exc_info.value.code == ErrorCode.INVALID_POOL_ID
