"""
Minimum UTXO Rule

Computes the minimum lovelace an output must carry. Strategies are tried in
order and the first that succeeds wins:

1. serialized byte-cost: pycardano's post-Alonzo rule on the real output (needs an address)
2. estimated byte-cost: structural size estimate from the address kind
3. legacy word-cost: one ADA plus a flat per-token storage surcharge

Each strategy is re-run with the coin field sized at its own result until
the encoded width of the coin stops changing. The result never drops below
MIN_UTXO_LOVELACE.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Mapping

import pycardano as pc

from cardano_delegation.addresses import address_kind as classify_address
from cardano_delegation.assets import group_by_policy, to_value
from cardano_delegation.chain_context import OfflineChainContext
from cardano_delegation.enums import AddressKind
from cardano_delegation.errors import ErrorCode, TransactionBuildError
from cardano_delegation.schemas import ProtocolParameters, TransactionOutputSpec

logger = logging.getLogger(__name__)

MIN_UTXO_LOVELACE = 1_000_000
UTXO_ENTRY_OVERHEAD = 160  # Ledger constant added to the serialized output size
TOKEN_STORAGE_COST = 34_482  # Legacy per-token surcharge
COIN_WIDTH_PASSES = 3

# Raw address bytes per kind (header + credential hashes)
ADDRESS_SIZES = {
    AddressKind.BASE: 57,
    AddressKind.POINTER: 35,
    AddressKind.ENTERPRISE: 29,
    AddressKind.REWARD: 29,
}


def _uint_size(value: int) -> int:
    """CBOR encoded size of an unsigned integer"""
    if value < 24:
        return 1
    if value < 2**8:
        return 2
    if value < 2**16:
        return 3
    if value < 2**32:
        return 5
    return 9


def _bytes_size(length: int) -> int:
    """CBOR encoded size of a byte string of ``length`` bytes"""
    return _uint_size(length) + length


def estimate_output_size(address_kind: AddressKind, lovelace: int, assets: Mapping[str, int]) -> int:
    """Structural estimate of an output's CBOR size in bytes"""
    size = 1  # output map / array header
    size += 1 + _bytes_size(ADDRESS_SIZES[address_kind])

    if not assets:
        return size + 1 + _uint_size(lovelace)

    grouped = group_by_policy(assets)
    size += 1 + 1 + _uint_size(lovelace)  # value array header, key, coin
    size += _uint_size(len(grouped))
    for names in grouped.values():
        size += _bytes_size(28) + _uint_size(len(names))
        for name, quantity in names.items():
            size += _bytes_size(len(name) // 2) + _uint_size(quantity)
    return size


@dataclass
class MinUtxoResult:
    """Required minimum with the strategy that produced it"""

    minimum: int
    strategy: str
    errors: list[str] = field(default_factory=list)


class MinUtxoRule:
    """Minimum-lovelace calculator for transaction outputs"""

    def __init__(self, params: ProtocolParameters):
        self.params = params
        self.context = OfflineChainContext(params)
        self._strategies: list[tuple[str, Callable[..., int]]] = [
            ("serialized_byte_cost", self._serialized_byte_cost),
            ("estimated_byte_cost", self._estimated_byte_cost),
            ("legacy_word_cost", self._legacy_word_cost),
        ]

    def _serialized_byte_cost(self, address_kind, lovelace, assets, address) -> int:
        if address is None:
            raise ValueError("no concrete address to serialize")
        if self.params.lovelace_per_utxo_byte <= 0:
            raise ValueError("lovelace_per_utxo_byte unavailable")
        output = pc.TransactionOutput(pc.Address.from_primitive(address), to_value(lovelace, assets))
        return pc.min_lovelace(self.context, output=output)

    def _estimated_byte_cost(self, address_kind, lovelace, assets, address) -> int:
        if self.params.lovelace_per_utxo_byte <= 0:
            raise ValueError("lovelace_per_utxo_byte unavailable")
        size = estimate_output_size(address_kind, lovelace, assets)
        return self.params.lovelace_per_utxo_byte * (UTXO_ENTRY_OVERHEAD + size)

    def _legacy_word_cost(self, address_kind, lovelace, assets, address) -> int:
        return MIN_UTXO_LOVELACE + len(assets) * TOKEN_STORAGE_COST

    def compute(
        self,
        address_kind: AddressKind,
        lovelace: int,
        assets: Mapping[str, int] | None = None,
        address: str | None = None,
    ) -> MinUtxoResult:
        """
        Run the strategies in order and return the first result

        Args:
            address_kind: Kind of the receiving address
            lovelace: Lovelace the output carries (affects coin width)
            assets: Canonical asset map
            address: Concrete bech32 address, enables exact serialization

        Returns:
            MinUtxoResult with the minimum clamped to MIN_UTXO_LOVELACE
        """
        assets = assets or {}
        errors = []
        for name, strategy in self._strategies:
            try:
                minimum = strategy(address_kind, lovelace, assets, address)
                for _ in range(COIN_WIDTH_PASSES):
                    resized = strategy(address_kind, max(lovelace, minimum, MIN_UTXO_LOVELACE), assets, address)
                    if resized <= minimum:
                        break
                    minimum = resized
            except Exception as e:
                errors.append(f"{name}: {e}")
                continue
            return MinUtxoResult(max(minimum, MIN_UTXO_LOVELACE), name, errors)

        # Unreachable while the legacy strategy cannot fail
        return MinUtxoResult(MIN_UTXO_LOVELACE + len(assets) * TOKEN_STORAGE_COST, "floor", errors)

    def minimum_lovelace(
        self,
        address_kind: AddressKind,
        lovelace: int,
        assets: Mapping[str, int] | None = None,
        address: str | None = None,
    ) -> int:
        return self.compute(address_kind, lovelace, assets, address).minimum

    def minimum_for_output(self, output: TransactionOutputSpec) -> int:
        try:
            kind = classify_address(output.address)
        except Exception:
            logger.debug("Could not classify output address, assuming base address")
            kind = AddressKind.BASE
        return self.minimum_lovelace(kind, output.lovelace, output.assets, output.address)

    def ensure_output(self, output: TransactionOutputSpec) -> int:
        """
        Check that an output carries at least its minimum

        Returns:
            The required minimum

        Raises:
            TransactionBuildError: OUTPUT_BELOW_MIN_UTXO
        """
        required = self.minimum_for_output(output)
        if output.lovelace < required:
            raise TransactionBuildError(
                ErrorCode.OUTPUT_BELOW_MIN_UTXO,
                f"Output carries {output.lovelace} lovelace, minimum is {required}",
                {"lovelace": output.lovelace, "required": required, "assets": len(output.assets)},
            )
        return required


def minimum_lovelace(
    address_kind: AddressKind,
    lovelace: int,
    assets: Mapping[str, int] | None,
    params: ProtocolParameters,
) -> int:
    """Minimum lovelace for an output of the given shape"""
    return MinUtxoRule(params).minimum_lovelace(address_kind, lovelace, assets)


def ada_to_lovelace(ada: float) -> int:
    return int(math.floor(ada * 1_000_000))


def lovelace_to_ada(lovelace: int) -> float:
    return lovelace / 1_000_000
