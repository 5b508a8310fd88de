"""
Protocol Parameter Normalization

Providers report protocol parameters in different shapes: Koios and
Blockfrost use snake_case, Cardanoscan and wallet SDKs camelCase,
cardano-cli / Ogmios their own names and nested price records. This module
maps all of them onto one ProtocolParameters record through an explicit,
ordered alias table.
"""

import logging
import math
from fractions import Fraction
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from cardano_delegation.errors import ErrorCode, ValidationError
from cardano_delegation.schemas import ProtocolParameters
from cardano_delegation.security import sanitize_error_message

logger = logging.getLogger(__name__)

DEFAULT_PROTOCOL_PARAMETERS = ProtocolParameters()

# canonical field -> (aliases in lookup order, integer only)
PARAMETER_ALIASES: dict[str, tuple[tuple[str, ...], bool]] = {
    "min_fee_a": (("min_fee_a", "minFeeA", "txFeePerByte"), True),
    "min_fee_b": (("min_fee_b", "minFeeB", "txFeeFixed"), True),
    "stake_key_deposit": (("key_deposit", "keyDeposit", "stakeKeyDeposit", "stakeAddressDeposit"), True),
    "pool_deposit": (("pool_deposit", "poolDeposit", "stakePoolDeposit"), True),
    "lovelace_per_utxo_byte": (
        (
            "coins_per_utxo_size",
            "coinsPerUtxoSize",
            "utxo_cost_per_byte",
            "utxoCostPerByte",
            "coinsPerUtxoByte",
            "lovelacePerUtxoByte",
        ),
        True,
    ),
    "lovelace_per_utxo_word": (
        ("coins_per_utxo_word", "utxo_cost_per_word", "utxoCostPerWord", "coinsPerUtxoWord", "lovelacePerUtxoWord"),
        True,
    ),
    "max_tx_size": (("max_tx_size", "maxTxSize"), True),
    "max_value_size": (("max_val_size", "maxValSize", "maxValueSize"), True),
    "collateral_percent": (("collateral_percent", "collateralPercent", "collateralPercentage"), True),
    "max_collateral_inputs": (("max_collateral_inputs", "maxCollateralInputs"), True),
    "price_mem": (("price_mem", "priceMem", "executionUnitPrices.priceMemory"), False),
    "price_step": (("price_step", "priceStep", "priceSteps", "executionUnitPrices.priceSteps"), False),
    "min_fee_ref_script_cost_per_byte": (
        ("min_fee_ref_script_cost_per_byte", "minFeeRefScriptCostPerByte"),
        False,
    ),
}


def _lookup(raw: Mapping[str, Any], alias: str) -> Any:
    """Resolve a possibly dotted alias against nested mappings"""
    value: Any = raw
    for part in alias.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return None
        value = value[part]
    return value


def _parse_number(value: Any, integer_only: bool) -> int | float | None:
    """
    Parse a provider value as a finite number

    Accepts ints, floats and numeric strings (including ``"577/10000"``
    ratios). Returns None when the value is unusable.
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number: int | float = int(text)
        except ValueError:
            try:
                number = float(Fraction(text))
            except (ValueError, ZeroDivisionError, OverflowError):
                return None
    elif isinstance(value, (int, float)):
        number = value
    else:
        return None

    if isinstance(number, float):
        if not math.isfinite(number):
            return None
        if integer_only:
            if not number.is_integer():
                return None
            return int(number)
    elif not integer_only:
        try:
            return float(number)
        except OverflowError:
            return None

    return number


def detect_provider(raw: Mapping[str, Any]) -> str:
    """Guess which provider produced a raw parameter blob (diagnostics only)"""
    if "min_fee_a" in raw:
        return "koios/blockfrost"
    if "minFeeA" in raw:
        return "camelCase (cardanoscan/sdk)"
    if "txFeePerByte" in raw:
        return "cardano-cli/ogmios"
    return "unknown"


def resolve_fields(raw: Mapping[str, Any]) -> dict[str, int | float]:
    """Resolve every canonical field from the alias table, defaulting the rest"""
    resolved: dict[str, int | float] = {}
    for field, (aliases, integer_only) in PARAMETER_ALIASES.items():
        value = None
        for alias in aliases:
            value = _parse_number(_lookup(raw, alias), integer_only)
            if value is not None:
                break
        if value is None:
            value = getattr(DEFAULT_PROTOCOL_PARAMETERS, field)
            logger.debug(f"Protocol parameter {field} missing or invalid, using default {value}")
        resolved[field] = value
    return resolved


def check_reasonable(fields: Mapping[str, int | float]) -> None:
    """
    Reject parameter sets no live network would report

    Raises:
        ValidationError: With code INVALID_PROTOCOL_PARAMETERS listing the
            failed checks
    """
    problems = []
    if fields["min_fee_a"] <= 0:
        problems.append("min_fee_a must be positive")
    if fields["min_fee_b"] <= 0:
        problems.append("min_fee_b must be positive")
    if fields["stake_key_deposit"] < 1_000_000:
        problems.append("stake_key_deposit must be at least 1 ADA")
    if fields["max_tx_size"] < 1_000:
        problems.append("max_tx_size must be at least 1000 bytes")
    if fields["max_value_size"] <= 100:
        problems.append("max_value_size must exceed 100 bytes")
    if fields["collateral_percent"] <= 100:
        problems.append("collateral_percent must exceed 100")
    if fields["lovelace_per_utxo_byte"] <= 0:
        problems.append("lovelace_per_utxo_byte must be positive")
    if any(value < 0 for value in fields.values()):
        problems.append("parameters must be non-negative")

    if problems:
        raise ValidationError(
            ErrorCode.INVALID_PROTOCOL_PARAMETERS,
            "Unreasonable protocol parameters: " + "; ".join(problems),
            {"problems": problems},
        )


def normalize(raw: Mapping[str, Any] | None) -> ProtocolParameters:
    """
    Normalize a raw provider parameter blob

    Never raises: an unusable blob yields the default parameter set.

    Args:
        raw: Provider response (any supported shape) or None

    Returns:
        Canonical ProtocolParameters
    """
    if not isinstance(raw, Mapping):
        logger.warning("Protocol parameters unavailable, using defaults")
        return DEFAULT_PROTOCOL_PARAMETERS

    logger.debug(f"Normalizing protocol parameters from provider: {detect_provider(raw)}")

    try:
        fields = resolve_fields(raw)
        check_reasonable(fields)
        return ProtocolParameters(**fields)
    except (ValidationError, PydanticValidationError) as e:
        logger.warning(f"Protocol parameter normalization failed, using defaults: {sanitize_error_message(e)}")
        return DEFAULT_PROTOCOL_PARAMETERS


def debug_summary(params: ProtocolParameters) -> dict[str, Any]:
    """Readable view of a parameter set for logs"""
    return {
        "fee": f"{params.min_fee_a} * size + {params.min_fee_b}",
        "stake_key_deposit_ada": params.stake_key_deposit / 1_000_000,
        "lovelace_per_utxo_byte": params.lovelace_per_utxo_byte,
        "max_tx_size": params.max_tx_size,
        "max_value_size": params.max_value_size,
        "collateral_percent": params.collateral_percent,
        "execution_prices": {"mem": params.price_mem, "step": params.price_step},
    }
