"""
Certificate Sequencing Tests
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from cardano_delegation.certificates import (
    CertificateSequencer,
    delegation,
    deregistration,
    registration,
    requires_stake_witness,
    total_deposits,
    total_refunds,
)
from cardano_delegation.enums import CertificateKind
from cardano_delegation.errors import ErrorCode, TransactionBuildError
from cardano_delegation.schemas import Certificate


@pytest.fixture
def sequencer():
    return CertificateSequencer()


class TestSequenceRules:
    """Co-occurrence and ordering rules"""

    def test_registration_then_delegation(self, sequencer, credential, pool_key_hash):
        assert sequencer.check([registration(credential), delegation(credential, pool_key_hash)]) is None

    @pytest.mark.parametrize(
        "build",
        [
            lambda c, p: [],
            lambda c, p: [delegation(c, p)],
            lambda c, p: [deregistration(c)],
            lambda c, p: [registration(c, 2_000_000), delegation(c, p)],
        ],
    )
    def test_valid_sequences(self, sequencer, credential, pool_key_hash, build):
        assert sequencer.check(build(credential, pool_key_hash)) is None

    def test_delegation_before_registration(self, sequencer, credential, pool_key_hash):
        violation = sequencer.check([delegation(credential, pool_key_hash), registration(credential)])
        assert violation.rule == "registration_after_delegation"
        assert violation.indexes == (1, 0)

    def test_registration_with_deregistration(self, sequencer, credential):
        violation = sequencer.check([registration(credential), deregistration(credential)])
        assert violation.rule == "registration_with_deregistration"

    def test_duplicate_delegation(self, sequencer, credential, pool_key_hash):
        violation = sequencer.check([delegation(credential, pool_key_hash), delegation(credential, "d" * 56)])
        assert violation.rule == "duplicate_kind"
        assert violation.indexes == (0, 1)

    def test_both_registration_variants(self, sequencer, credential):
        """Test that legacy and Conway registrations count as one family"""
        violation = sequencer.check([registration(credential), registration(credential, 2_000_000)])
        assert violation.rule == "duplicate_kind"

    def test_both_deregistration_variants(self, sequencer, credential):
        violation = sequencer.check([deregistration(credential), deregistration(credential, 2_000_000)])
        assert violation.rule == "duplicate_kind"

    def test_validate_raises(self, sequencer, credential, pool_key_hash):
        with pytest.raises(TransactionBuildError) as exc_info:
            sequencer.validate([delegation(credential, pool_key_hash), registration(credential)])

        assert exc_info.value.code == ErrorCode.INVALID_CERTIFICATE_SEQUENCE
        assert exc_info.value.context["rule"] == "registration_after_delegation"


class TestCertificateShape:
    def test_builders(self, credential, pool_key_hash):
        assert registration(credential).kind == CertificateKind.STAKE_KEY_REGISTRATION
        assert registration(credential, 2_000_000).kind == CertificateKind.STAKE_REGISTRATION
        assert deregistration(credential).kind == CertificateKind.STAKE_KEY_DEREGISTRATION
        assert deregistration(credential, 2_000_000).kind == CertificateKind.STAKE_DEREGISTRATION
        assert delegation(credential, pool_key_hash).pool_key_hash == pool_key_hash

    def test_delegation_requires_pool(self, credential):
        with pytest.raises(PydanticValidationError):
            Certificate(kind=CertificateKind.STAKE_DELEGATION, stake_credential=credential)

    def test_registration_rejects_pool(self, credential, pool_key_hash):
        with pytest.raises(PydanticValidationError):
            Certificate(
                kind=CertificateKind.STAKE_KEY_REGISTRATION,
                stake_credential=credential,
                pool_key_hash=pool_key_hash,
            )

    def test_delegation_rejects_deposit(self, credential, pool_key_hash):
        with pytest.raises(PydanticValidationError):
            Certificate(
                kind=CertificateKind.STAKE_DELEGATION,
                stake_credential=credential,
                pool_key_hash=pool_key_hash,
                deposit=2_000_000,
            )

    def test_certificates_are_immutable(self, credential):
        cert = registration(credential)
        with pytest.raises(PydanticValidationError):
            cert.deposit = 5


class TestDeposits:
    def test_deposit_from_parameters(self, params, credential, pool_key_hash):
        certs = [registration(credential), delegation(credential, pool_key_hash)]
        assert total_deposits(certs, params) == params.stake_key_deposit
        assert total_refunds(certs, params) == 0

    def test_explicit_deposit(self, params, credential):
        assert total_deposits([registration(credential, 3_000_000)], params) == 3_000_000

    def test_refunds(self, params, credential):
        assert total_refunds([deregistration(credential)], params) == params.stake_key_deposit
        assert total_refunds([deregistration(credential, 1_500_000)], params) == 1_500_000

    def test_stake_witness(self, credential, pool_key_hash):
        assert not requires_stake_witness([registration(credential)])
        assert requires_stake_witness([registration(credential), delegation(credential, pool_key_hash)])
        assert requires_stake_witness([deregistration(credential)])
