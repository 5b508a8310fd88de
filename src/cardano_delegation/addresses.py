"""
Address and Pool Id Validation

Format checks for caller-supplied addresses and pool ids, plus stake
credential extraction. Bech32 decoding and address structure come from
pycardano.
"""

import logging
import re

import pycardano as pc
from pycardano.crypto.bech32 import bech32_decode, convertbits, encode

from cardano_delegation.enums import AddressKind, CredentialKind, NetworkType
from cardano_delegation.errors import ErrorCode, ValidationError
from cardano_delegation.schemas import StakeCredential

logger = logging.getLogger(__name__)

POOL_BECH32_PREFIX = "pool1"
POOL_BECH32_LENGTH = 56
POOL_HEX_LENGTH = 56
MAX_ADDRESS_LENGTH = 200

_HEX_56 = re.compile(r"^[0-9a-fA-F]{56}$")


def to_pycardano_network(network: NetworkType) -> pc.Network:
    """Map a configured network onto the address network tag"""
    return pc.Network.MAINNET if network.is_mainnet else pc.Network.TESTNET


def address_prefixes(network: NetworkType) -> tuple[str, str]:
    """Payment and stake address prefixes accepted on a network"""
    if network.is_mainnet:
        return "addr1", "stake1"
    return "addr_test1", "stake_test1"


def parse_address(address: str, network: NetworkType) -> pc.Address:
    """
    Validate a Shelley address against the configured network

    Args:
        address: Bech32 payment or stake address
        network: Configured network

    Returns:
        Parsed pycardano Address

    Raises:
        ValidationError: INVALID_ADDRESS when the prefix, checksum or
            network tag does not match
    """
    if not isinstance(address, str) or not address.strip():
        raise ValidationError.invalid_address("address is empty")
    address = address.strip()
    if len(address) > MAX_ADDRESS_LENGTH:
        raise ValidationError.invalid_address("address is too long")

    if not address.startswith(address_prefixes(network)):
        raise ValidationError.invalid_address(f"address prefix does not match network {network.value}")

    try:
        parsed = pc.Address.from_primitive(address)
    except Exception as e:
        raise ValidationError(ErrorCode.INVALID_ADDRESS, "Invalid address: could not decode bech32", cause=e) from e

    if parsed.network != to_pycardano_network(network):
        raise ValidationError.invalid_address(f"address network tag does not match {network.value}")

    return parsed


def address_kind(address: pc.Address | str) -> AddressKind:
    """Classify an address for output sizing"""
    if isinstance(address, str):
        address = pc.Address.from_primitive(address)

    if address.payment_part is None:
        return AddressKind.REWARD
    if isinstance(address.staking_part, pc.PointerAddress):
        return AddressKind.POINTER
    if address.staking_part is None:
        return AddressKind.ENTERPRISE
    return AddressKind.BASE


def stake_credential(address: str, network: NetworkType) -> StakeCredential:
    """
    Extract the stake credential of a base or reward address

    Pointer addresses are not supported: resolving the pointer needs a
    block-indexing lookup this engine does not have.

    Raises:
        ValidationError: INVALID_ADDRESS when there is no stake part,
            UNSUPPORTED_ADDRESS for pointer addresses
    """
    parsed = parse_address(address, network)
    staking_part = parsed.staking_part

    if isinstance(staking_part, pc.PointerAddress):
        raise ValidationError(
            ErrorCode.UNSUPPORTED_ADDRESS,
            "Pointer addresses are not supported for staking operations",
        )
    if isinstance(staking_part, pc.VerificationKeyHash):
        return StakeCredential(hash=staking_part.payload.hex(), kind=CredentialKind.KEY)
    if isinstance(staking_part, pc.ScriptHash):
        return StakeCredential(hash=staking_part.payload.hex(), kind=CredentialKind.SCRIPT)

    raise ValidationError.invalid_address("address has no stake credential")


def credential_to_pycardano(credential: StakeCredential) -> pc.VerificationKeyHash | pc.ScriptHash:
    payload = bytes.fromhex(credential.hash)
    if credential.kind == CredentialKind.SCRIPT:
        return pc.ScriptHash(payload)
    return pc.VerificationKeyHash(payload)


def reward_address(credential: StakeCredential, network: NetworkType) -> str:
    """Bech32 reward (stake) address for a credential"""
    return str(pc.Address(staking_part=credential_to_pycardano(credential), network=to_pycardano_network(network)))


def validate_pool_id(pool_id: str) -> str:
    """
    Validate a pool id and return its 56-character hex key hash

    Accepts bech32 ``pool1...`` ids (56 characters, 28-byte payload) or raw
    56-character hex key hashes.

    Raises:
        ValidationError: INVALID_POOL_ID
    """
    if not isinstance(pool_id, str) or not pool_id.strip():
        raise ValidationError.invalid_pool_id("pool id is empty")
    pool_id = pool_id.strip()

    if _HEX_56.match(pool_id):
        return pool_id.lower()

    if not pool_id.startswith(POOL_BECH32_PREFIX):
        raise ValidationError.invalid_pool_id("expected a pool1 bech32 id or 56 hex characters")
    if len(pool_id) != POOL_BECH32_LENGTH:
        raise ValidationError.invalid_pool_id(f"bech32 pool id must be {POOL_BECH32_LENGTH} characters")

    hrp, data, _ = bech32_decode(pool_id)
    if hrp != "pool" or data is None:
        raise ValidationError.invalid_pool_id("bech32 checksum failed")
    decoded = convertbits(data, 5, 8, False)
    if decoded is None or len(decoded) != POOL_HEX_LENGTH // 2:
        raise ValidationError.invalid_pool_id("pool key hash must be 28 bytes")

    return bytes(decoded).hex()


def pool_id_to_bech32(pool_key_hash: str) -> str:
    """Render a 56-hex pool key hash as a ``pool1...`` id"""
    return encode("pool", bytes.fromhex(pool_key_hash))
