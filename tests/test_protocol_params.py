"""
Protocol Parameter Normalization Tests

Provider shapes (snake_case, camelCase, cardano-cli / Ogmios), invalid
values and the defaults fallback.
"""

import math

import pytest

from cardano_delegation.errors import ErrorCode, ValidationError
from cardano_delegation.protocol_params import (
    DEFAULT_PROTOCOL_PARAMETERS,
    check_reasonable,
    debug_summary,
    detect_provider,
    normalize,
    resolve_fields,
)


class TestNormalizeShapes:
    """Each provider shape maps onto the same canonical record"""

    def test_koios_blockfrost_snake_case(self):
        """Test snake_case keys with string-encoded numbers"""
        params = normalize(
            {
                "min_fee_a": 44,
                "min_fee_b": 155381,
                "key_deposit": "2000000",
                "pool_deposit": "500000000",
                "coins_per_utxo_size": "4310",
                "max_tx_size": 16384,
                "max_val_size": "5000",
                "collateral_percent": 150,
                "max_collateral_inputs": 3,
                "price_mem": 0.0577,
                "price_step": 0.0000721,
            }
        )

        assert params.min_fee_a == 44
        assert params.min_fee_b == 155381
        assert params.stake_key_deposit == 2_000_000
        assert params.lovelace_per_utxo_byte == 4310
        assert params.max_value_size == 5000
        assert params.price_mem == pytest.approx(0.0577)

    def test_camel_case(self):
        """Test camelCase keys from explorers and wallet SDKs"""
        params = normalize(
            {
                "minFeeA": 45,
                "minFeeB": 156000,
                "stakeKeyDeposit": 3_000_000,
                "coinsPerUtxoByte": 4000,
                "maxTxSize": 20000,
                "collateralPercentage": 200,
            }
        )

        assert params.min_fee_a == 45
        assert params.min_fee_b == 156000
        assert params.stake_key_deposit == 3_000_000
        assert params.lovelace_per_utxo_byte == 4000
        assert params.max_tx_size == 20000
        assert params.collateral_percent == 200

    def test_ogmios_nested_prices(self):
        """Test dotted aliases and ratio strings"""
        params = normalize(
            {
                "txFeePerByte": 44,
                "txFeeFixed": 155381,
                "stakeAddressDeposit": 2_000_000,
                "utxoCostPerByte": 4310,
                "executionUnitPrices": {"priceMemory": "577/10000", "priceSteps": "721/10000000"},
            }
        )

        assert params.min_fee_a == 44
        assert params.price_mem == pytest.approx(0.0577)
        assert params.price_step == pytest.approx(0.0000721)

    def test_missing_fields_use_defaults(self):
        """Test that absent fields fall back individually"""
        params = normalize({"min_fee_a": 50})

        assert params.min_fee_a == 50
        assert params.min_fee_b == DEFAULT_PROTOCOL_PARAMETERS.min_fee_b
        assert params.stake_key_deposit == DEFAULT_PROTOCOL_PARAMETERS.stake_key_deposit

    def test_first_alias_wins(self):
        params = normalize({"min_fee_a": 44, "minFeeA": 99})
        assert params.min_fee_a == 44


class TestInvalidValues:
    """Unusable values never crash normalization"""

    @pytest.mark.parametrize("value", ["abc", "", True, None, float("nan"), float("inf"), "inf", [44]])
    def test_unparseable_value_uses_default(self, value):
        params = normalize({"min_fee_a": value})
        assert params.min_fee_a == DEFAULT_PROTOCOL_PARAMETERS.min_fee_a

    @pytest.mark.parametrize("raw", [{"min_fee_a": "1e400"}, {"price_mem": 10**400}, {"price_step": "1e400"}])
    def test_out_of_float_range_uses_default(self, raw):
        params = normalize(raw)
        assert params.min_fee_a == DEFAULT_PROTOCOL_PARAMETERS.min_fee_a
        assert params.price_mem == DEFAULT_PROTOCOL_PARAMETERS.price_mem
        assert params.price_step == DEFAULT_PROTOCOL_PARAMETERS.price_step

    def test_non_integral_value_for_integer_field(self):
        params = normalize({"max_tx_size": 16384.5})
        assert params.max_tx_size == DEFAULT_PROTOCOL_PARAMETERS.max_tx_size

    def test_integral_float_string_accepted(self):
        params = normalize({"min_fee_a": "44.0"})
        assert params.min_fee_a == 44
        assert isinstance(params.min_fee_a, int)

    def test_fallback_to_next_alias_when_first_invalid(self):
        params = normalize({"min_fee_a": "bad", "minFeeA": 47})
        assert params.min_fee_a == 47

    @pytest.mark.parametrize("raw", [None, [], "params", 42])
    def test_non_mapping_returns_defaults(self, raw):
        assert normalize(raw) == DEFAULT_PROTOCOL_PARAMETERS

    @pytest.mark.parametrize(
        "raw",
        [
            {"min_fee_b": 0},
            {"key_deposit": 500_000},
            {"max_tx_size": 500},
            {"collateral_percent": 100},
            {"max_val_size": 50},
        ],
    )
    def test_unreasonable_parameters_return_defaults(self, raw):
        assert normalize(raw) == DEFAULT_PROTOCOL_PARAMETERS


class TestReasonablenessCheck:
    def test_check_reasonable_lists_problems(self):
        """Test that every failed check is reported"""
        fields = resolve_fields({"collateral_percent": 50, "min_fee_a": 0})

        with pytest.raises(ValidationError) as exc_info:
            check_reasonable(fields)

        assert exc_info.value.code == ErrorCode.INVALID_PROTOCOL_PARAMETERS
        assert len(exc_info.value.context["problems"]) == 2

    def test_defaults_are_reasonable(self):
        check_reasonable(DEFAULT_PROTOCOL_PARAMETERS.model_dump())


class TestDiagnostics:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ({"min_fee_a": 44}, "koios/blockfrost"),
            ({"minFeeA": 44}, "camelCase (cardanoscan/sdk)"),
            ({"txFeePerByte": 44}, "cardano-cli/ogmios"),
            ({}, "unknown"),
        ],
    )
    def test_detect_provider(self, raw, expected):
        assert detect_provider(raw) == expected

    def test_debug_summary(self):
        summary = debug_summary(DEFAULT_PROTOCOL_PARAMETERS)
        assert summary["fee"] == "44 * size + 155381"
        assert math.isclose(summary["stake_key_deposit_ada"], 2.0)
