"""
Pytest configuration for delegation tests

Fixtures for addresses, protocol parameters and an offline data service.
"""

from pathlib import Path

import pytest
from dotenv import load_dotenv

from cardano_delegation.addresses import pool_id_to_bech32, stake_credential
from cardano_delegation.config import Settings
from cardano_delegation.data_service import CardanoDataService
from cardano_delegation.enums import NetworkType
from cardano_delegation.protocol_params import DEFAULT_PROTOCOL_PARAMETERS
from cardano_delegation.security import RateLimiter
from tests.factories import CardanoAddressFactory, PoolFactory, TransactionFactory
from tests.mocks import MockDataProvider, no_sleep


# Load test environment variables
@pytest.fixture(scope="session", autouse=True)
def load_env():
    """Load environment variables for testing"""
    env_file = Path(__file__).parent.parent / ".env"
    if env_file.exists():
        load_dotenv(env_file)

    yield


@pytest.fixture
def testnet_settings():
    """Offline testnet settings with fast retries"""
    return Settings(
        _env_file=None,
        network=NetworkType.TESTNET,
        retry_attempts=2,
        retry_base_delay=0,
        request_timeout=5,
    )


@pytest.fixture
def params():
    return DEFAULT_PROTOCOL_PARAMETERS


# Address fixtures
@pytest.fixture
def base_address():
    """Testnet base address (payment a..a, stake b..b)"""
    return CardanoAddressFactory.create_base_address()


@pytest.fixture
def other_address():
    """Second testnet base address for payment outputs"""
    return CardanoAddressFactory.create_base_address(payment="1", stake="2")


@pytest.fixture
def stake_address():
    return CardanoAddressFactory.create_stake_address()


@pytest.fixture
def credential(base_address):
    return stake_credential(base_address, NetworkType.TESTNET)


# Pool fixtures
@pytest.fixture
def pool_key_hash():
    return "c" * 56


@pytest.fixture
def pool_bech32(pool_key_hash):
    return pool_id_to_bech32(pool_key_hash)


@pytest.fixture
def healthy_pool(pool_key_hash):
    return PoolFactory.create_pool(pool_key_hash)


# Data service fixtures
@pytest.fixture
def provider(base_address, healthy_pool):
    """Provider holding one 10 ADA UTXO at the base address"""
    return MockDataProvider(
        name="koios",
        balance=10_000_000,
        utxos=[TransactionFactory.create_utxo(base_address, 10_000_000)],
        pools={healthy_pool.pool_id: healthy_pool},
    )


@pytest.fixture
def data_service(provider, testnet_settings):
    return CardanoDataService([provider], RateLimiter(max_requests=1000), testnet_settings, sleep=no_sleep)
