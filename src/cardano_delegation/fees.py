"""
Fee Estimation

Linear fee (min_fee_a * size + min_fee_b) over a structural size estimate,
plus surcharges for native tokens, metadata and script execution. Falls back
to a fixed fee when protocol parameters are unavailable.
"""

import logging
import math

from cardano_delegation.config import settings
from cardano_delegation.enums import ComplexityTier
from cardano_delegation.metadata import metadata_size
from cardano_delegation.schemas import ComplexityFactors, ExecutionUnits, FeeBreakdown, ProtocolParameters

logger = logging.getLogger(__name__)

# Size estimate components (bytes)
BASE_TX_SIZE = 250
INPUT_SIZE = 40
OUTPUT_SIZE = 50
CERTIFICATE_SIZE = {ComplexityTier.SIMPLE: 50, ComplexityTier.MODERATE: 75, ComplexityTier.COMPLEX: 100}
WITNESS_SIZE = 100
SCRIPT_OVERHEAD = {ComplexityTier.SIMPLE: 0, ComplexityTier.MODERATE: 100, ComplexityTier.COMPLEX: 200}
TOKEN_BASE_SIZE = 50
TOKEN_SIZE = 30
MIN_METADATA_SIZE = 50

# Surcharges (lovelace); token and metadata bytes are already in the size estimate
TOKEN_BUNDLE_THRESHOLD = 10
TOKEN_BUNDLE_SURCHARGE = 25_000
LARGE_METADATA_THRESHOLD = 1_000
METADATA_SURCHARGE_PER_100_BYTES = 1_000

# Execution budget assumed per tier when no explicit units are given
TIER_EXECUTION_UNITS = {
    ComplexityTier.SIMPLE: ExecutionUnits(mem=0, steps=0),
    ComplexityTier.MODERATE: ExecutionUnits(mem=500_000, steps=200_000_000),
    ComplexityTier.COMPLEX: ExecutionUnits(mem=2_000_000, steps=1_000_000_000),
}

MAX_BUFFER_PERCENT = 40


def estimate_size(input_count: int, factors: ComplexityFactors) -> int:
    """Structural size estimate of the signed transaction in bytes"""
    tier = factors.tier
    size = BASE_TX_SIZE + input_count * INPUT_SIZE + factors.output_count * OUTPUT_SIZE
    size += factors.certificate_count * CERTIFICATE_SIZE[tier]

    if tier == ComplexityTier.COMPLEX:
        size += WITNESS_SIZE + 2 * WITNESS_SIZE * input_count
    elif tier == ComplexityTier.MODERATE:
        size += WITNESS_SIZE + WITNESS_SIZE * input_count
    else:
        size += WITNESS_SIZE * input_count

    if factors.native_tokens:
        size += TOKEN_BASE_SIZE + TOKEN_SIZE * factors.native_tokens
    if factors.metadata_size:
        size += max(factors.metadata_size, MIN_METADATA_SIZE)

    return size + SCRIPT_OVERHEAD[tier]


def token_surcharge(native_tokens: int) -> int:
    """Flat charge for bundles of more than ten native tokens"""
    return TOKEN_BUNDLE_SURCHARGE if native_tokens > TOKEN_BUNDLE_THRESHOLD else 0


def metadata_surcharge(size: int) -> int:
    """1000 lovelace per started 100 bytes, only for metadata over 1000 bytes"""
    if size <= LARGE_METADATA_THRESHOLD:
        return 0
    return math.ceil(size / 100) * METADATA_SURCHARGE_PER_100_BYTES


def factors_from_metadata(metadata: dict | None, **kwargs) -> ComplexityFactors:
    """ComplexityFactors with ``metadata_size`` measured from real metadata"""
    return ComplexityFactors(metadata_size=metadata_size(metadata), **kwargs)


class FeeEstimator:
    """
    Transaction fee estimator

    Args:
        params: Protocol parameters, or None when they could not be fetched
        fallback_fee: Fee returned when estimation is impossible
    """

    def __init__(self, params: ProtocolParameters | None, fallback_fee: int | None = None):
        self.params = params
        self.fallback_fee = fallback_fee if fallback_fee is not None else settings.fallback_fee

    def linear_fee(self, size: int) -> int:
        """Exact linear fee for a serialized transaction of ``size`` bytes"""
        params = self.params or ProtocolParameters()
        return params.min_fee_a * size + params.min_fee_b

    def script_surcharge(self, factors: ComplexityFactors) -> int:
        params = self.params or ProtocolParameters()
        units = factors.execution_units or TIER_EXECUTION_UNITS[factors.tier]
        return math.ceil(units.mem * params.price_mem + units.steps * params.price_step)

    def breakdown(self, input_count: int, factors: ComplexityFactors | None = None) -> FeeBreakdown:
        """
        Estimate the fee and report its components

        Never raises; returns a fallback breakdown when parameters are
        missing or the computation fails.
        """
        factors = factors or ComplexityFactors()
        input_count = max(input_count, 1)

        if self.params is None:
            logger.warning(f"Protocol parameters unavailable, using fallback fee {self.fallback_fee}")
            return self._fallback(input_count, factors)

        try:
            size = estimate_size(input_count, factors)
            return FeeBreakdown(
                size_estimate=size,
                base_fee=self.linear_fee(size),
                token_surcharge=token_surcharge(factors.native_tokens),
                metadata_surcharge=metadata_surcharge(factors.metadata_size),
                script_surcharge=self.script_surcharge(factors),
            )
        except (ArithmeticError, ValueError) as e:
            logger.warning(f"Fee estimation failed, using fallback fee: {e}")
            return self._fallback(input_count, factors)

    def _fallback(self, input_count: int, factors: ComplexityFactors) -> FeeBreakdown:
        min_fee_b = self.params.min_fee_b if self.params else 0
        return FeeBreakdown(
            size_estimate=estimate_size(input_count, factors),
            base_fee=max(self.fallback_fee, min_fee_b),
            is_fallback=True,
        )

    def estimate(self, input_count: int, factors: ComplexityFactors | None = None) -> int:
        """
        Estimate the fee in lovelace

        Args:
            input_count: Number of inputs the transaction spends
            factors: Output/certificate/token/metadata/script profile

        Returns:
            Fee in lovelace, never below min_fee_b
        """
        fee = self.breakdown(input_count, factors).total
        if self.params is not None:
            fee = max(fee, self.params.min_fee_b)
        return fee

    @staticmethod
    def buffer_percent(factors: ComplexityFactors) -> int:
        """Safety margin applied on top of an estimate"""
        percent = 20
        if factors.tier == ComplexityTier.COMPLEX:
            percent += 15
        elif factors.tier == ComplexityTier.MODERATE:
            percent += 5
        if factors.native_tokens > TOKEN_BUNDLE_THRESHOLD:
            percent += 5
        if factors.metadata_size > LARGE_METADATA_THRESHOLD:
            percent += 2
        return min(percent, MAX_BUFFER_PERCENT)

    def with_buffer(self, input_count: int, factors: ComplexityFactors | None = None) -> int:
        """Estimate plus a safety margin, used for balance pre-checks"""
        factors = factors or ComplexityFactors()
        fee = self.estimate(input_count, factors)
        return fee + math.ceil(fee * self.buffer_percent(factors) / 100)
