"""
Asset Ledger

Converts provider UTXO / asset records into canonical multi-asset maps keyed
by asset id (policy id followed by the hex asset name).

Supported asset entry shapes:
- {"unit": "<policy><name>", "quantity": "10"}            (Blockfrost)
- {"policy_id": ..., "asset_name": ..., "quantity": ...}   (Koios)
- {"policyId": ..., "assetName": ..., "quantity"|"amount"} (wallet SDKs)
"""

import logging
import re
from typing import Any, Iterable, Mapping

import pycardano as pc
from pydantic import ValidationError as PydanticValidationError

from cardano_delegation.schemas import UTXO

logger = logging.getLogger(__name__)

POLICY_ID_LENGTH = 56
MAX_ASSET_NAME_LENGTH = 64
MAX_ASSET_ID_LENGTH = POLICY_ID_LENGTH + MAX_ASSET_NAME_LENGTH

_HEX = re.compile(r"^[0-9a-f]*$")


def _parse_quantity(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _first(entry: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if entry.get(key) is not None:
            return entry[key]
    return None


def asset_id_from_entry(entry: Mapping[str, Any]) -> str | None:
    """
    Build the canonical asset id for one raw entry

    Returns:
        Lowercase asset id, or None when the entry is lovelace or malformed
    """
    unit = entry.get("unit")
    if isinstance(unit, str):
        if unit == "lovelace":
            return None
        asset_id = unit
    else:
        policy_id = _first(entry, "policyId", "policy_id")
        asset_name = _first(entry, "assetName", "asset_name")
        if not isinstance(policy_id, str):
            return None
        if asset_name is not None and not isinstance(asset_name, str):
            return None
        asset_id = policy_id + (asset_name or "")

    asset_id = asset_id.strip().lower()
    if not POLICY_ID_LENGTH <= len(asset_id) <= MAX_ASSET_ID_LENGTH:
        return None
    if len(asset_id) % 2 or not _HEX.match(asset_id):
        return None
    return asset_id


def to_canonical_assets(raw_entries: Iterable[Mapping[str, Any]] | None) -> dict[str, int]:
    """
    Convert raw asset entries into an ``asset_id -> quantity`` map

    Never raises. Entries with missing identifiers, malformed hex or a
    non-positive quantity are dropped; entries for the same asset are summed.
    """
    assets: dict[str, int] = {}
    if not raw_entries:
        return assets

    for entry in raw_entries:
        if not isinstance(entry, Mapping):
            logger.debug("Skipping non-mapping asset entry")
            continue

        asset_id = asset_id_from_entry(entry)
        if asset_id is None:
            if entry.get("unit") != "lovelace":
                logger.debug("Skipping asset entry with malformed identifier")
            continue

        quantity = _parse_quantity(_first(entry, "quantity", "amount"))
        if quantity is None or quantity <= 0:
            logger.debug(f"Skipping asset {asset_id[:POLICY_ID_LENGTH]} with non-positive quantity")
            continue

        assets[asset_id] = assets.get(asset_id, 0) + quantity

    return assets


def split_asset_id(asset_id: str) -> tuple[str, str]:
    """Split an asset id into (policy_id, asset_name_hex)"""
    return asset_id[:POLICY_ID_LENGTH], asset_id[POLICY_ID_LENGTH:]


def group_by_policy(assets: Mapping[str, int]) -> dict[str, dict[str, int]]:
    """Group an asset map as ``policy_id -> {asset_name_hex: quantity}``"""
    grouped: dict[str, dict[str, int]] = {}
    for asset_id, quantity in assets.items():
        policy_id, name = split_asset_id(asset_id)
        grouped.setdefault(policy_id, {})[name] = quantity
    return grouped


def merge_assets(*asset_maps: Mapping[str, int]) -> dict[str, int]:
    """Sum any number of asset maps"""
    merged: dict[str, int] = {}
    for asset_map in asset_maps:
        for asset_id, quantity in asset_map.items():
            merged[asset_id] = merged.get(asset_id, 0) + quantity
    return {asset_id: quantity for asset_id, quantity in merged.items() if quantity}


def subtract_assets(available: Mapping[str, int], spent: Mapping[str, int]) -> dict[str, int]:
    """
    Subtract ``spent`` from ``available``

    Raises:
        ValueError: If any asset would go negative
    """
    remaining = dict(available)
    for asset_id, quantity in spent.items():
        left = remaining.get(asset_id, 0) - quantity
        if left < 0:
            raise ValueError(f"Asset {asset_id[:POLICY_ID_LENGTH]} short by {-left}")
        if left:
            remaining[asset_id] = left
        else:
            remaining.pop(asset_id, None)
    return remaining


def covers(available: Mapping[str, int], required: Mapping[str, int]) -> bool:
    """Check that ``available`` holds at least ``required`` of every asset"""
    return all(available.get(asset_id, 0) >= quantity for asset_id, quantity in required.items())


def lovelace_from_raw(raw: Mapping[str, Any]) -> int:
    """
    Read the lovelace amount of a raw UTXO

    Handles scalar ``lovelace`` / ``value`` fields and Blockfrost-style
    ``amount`` lists.
    """
    for key in ("lovelace", "value", "amount"):
        value = raw.get(key)
        if isinstance(value, list):
            total = 0
            for entry in value:
                if isinstance(entry, Mapping) and entry.get("unit") == "lovelace":
                    total += _parse_quantity(entry.get("quantity")) or 0
            return total
        quantity = _parse_quantity(value)
        if quantity is not None:
            return quantity
    return 0


def _raw_asset_entries(raw: Mapping[str, Any]) -> list:
    entries = []
    for key in ("assets", "asset_list"):
        value = raw.get(key)
        if isinstance(value, list):
            entries.extend(value)
    amount = raw.get("amount")
    if isinstance(amount, list):
        entries.extend(amount)
    return entries


def utxo_from_raw(raw: Mapping[str, Any], address: str | None = None) -> UTXO:
    """
    Build a UTXO from a provider record

    Raises:
        pydantic.ValidationError: If the hash, index or lovelace is invalid
    """
    return UTXO(
        tx_hash=_first(raw, "tx_hash", "txHash", "hash"),
        output_index=_parse_quantity(_first(raw, "output_index", "tx_index", "outputIndex", "index")),
        address=_first(raw, "address") or address,
        lovelace=lovelace_from_raw(raw),
        assets=to_canonical_assets(_raw_asset_entries(raw)),
    )


def utxos_from_raw(raw_utxos: Iterable[Mapping[str, Any]], address: str | None = None) -> list[UTXO]:
    """Build UTXOs, skipping records that fail validation"""
    utxos = []
    for raw in raw_utxos:
        if isinstance(raw, UTXO):
            utxos.append(raw)
            continue
        try:
            utxos.append(utxo_from_raw(raw, address))
        except (PydanticValidationError, TypeError, AttributeError) as e:
            logger.warning(f"Skipping invalid UTXO record: {type(e).__name__}")
    return utxos


def total_lovelace(utxos: Iterable[UTXO]) -> int:
    return sum(utxo.lovelace for utxo in utxos)


def total_assets(utxos: Iterable[UTXO]) -> dict[str, int]:
    return merge_assets(*(utxo.assets for utxo in utxos))


def to_multi_asset(assets: Mapping[str, int]) -> pc.MultiAsset:
    """Convert a canonical asset map into a pycardano MultiAsset"""
    return pc.MultiAsset(
        {
            pc.ScriptHash(bytes.fromhex(policy_id)): pc.Asset(
                {pc.AssetName(bytes.fromhex(name)): quantity for name, quantity in names.items()}
            )
            for policy_id, names in group_by_policy(assets).items()
        }
    )


def to_value(lovelace: int, assets: Mapping[str, int] | None = None) -> pc.Value:
    """Build a pycardano Value; ADA-only when there are no assets"""
    if not assets:
        return pc.Value(lovelace)
    return pc.Value(coin=lovelace, multi_asset=to_multi_asset(assets))


def from_value(value: pc.Value) -> tuple[int, dict[str, int]]:
    """Split a pycardano Value into lovelace and a canonical asset map"""
    assets = {}
    for policy_id, names in (value.multi_asset or {}).items():
        for name, quantity in names.items():
            if quantity:
                assets[policy_id.payload.hex() + name.payload.hex()] = quantity
    return value.coin, assets
