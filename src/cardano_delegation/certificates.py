"""
Certificate Sequencing

Validates the ordered certificate list of one transaction against the
ledger's co-occurrence and ordering rules, and computes the deposits and
refunds the certificates imply.
"""

import logging
from dataclasses import dataclass
from typing import Sequence

from cardano_delegation.enums import CertificateKind
from cardano_delegation.errors import ErrorCode, TransactionBuildError
from cardano_delegation.schemas import Certificate, ProtocolParameters, StakeCredential

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SequenceViolation:
    """Why a certificate list was rejected"""

    rule: str
    message: str
    indexes: tuple[int, ...] = ()


class CertificateSequencer:
    """Stateless validator over an ordered certificate list"""

    def check(self, certificates: Sequence[Certificate]) -> SequenceViolation | None:
        """
        Validate a certificate list

        Returns:
            None when valid, otherwise the first violated rule
        """
        registrations = [i for i, cert in enumerate(certificates) if cert.kind.is_registration]
        deregistrations = [i for i, cert in enumerate(certificates) if cert.kind.is_deregistration]
        delegations = [i for i, cert in enumerate(certificates) if cert.kind.is_delegation]

        if registrations and deregistrations:
            return SequenceViolation(
                rule="registration_with_deregistration",
                message="Stake registration and deregistration cannot appear in the same transaction",
                indexes=(registrations[0], deregistrations[0]),
            )

        for reg_index in registrations:
            for del_index in delegations:
                if reg_index >= del_index:
                    return SequenceViolation(
                        rule="registration_after_delegation",
                        message="Stake registration must precede delegation",
                        indexes=(reg_index, del_index),
                    )

        seen: dict[CertificateKind, int] = {}
        for index, cert in enumerate(certificates):
            if cert.kind in seen:
                return SequenceViolation(
                    rule="duplicate_kind",
                    message=f"Duplicate {cert.kind.value} certificate",
                    indexes=(seen[cert.kind], index),
                )
            seen[cert.kind] = index

        for family, indexes in (("registration", registrations), ("deregistration", deregistrations)):
            if len(indexes) > 1:
                return SequenceViolation(
                    rule="duplicate_kind",
                    message=f"More than one stake {family} certificate",
                    indexes=tuple(indexes),
                )

        return None

    def validate(self, certificates: Sequence[Certificate]) -> None:
        """
        Raises:
            TransactionBuildError: INVALID_CERTIFICATE_SEQUENCE
        """
        violation = self.check(certificates)
        if violation is not None:
            logger.info(f"Certificate sequence rejected: {violation.rule}")
            raise TransactionBuildError(
                ErrorCode.INVALID_CERTIFICATE_SEQUENCE,
                violation.message,
                {"rule": violation.rule, "indexes": list(violation.indexes)},
            )


def registration(credential: StakeCredential, deposit: int | None = None) -> Certificate:
    """Stake registration; Conway variant when an explicit deposit is given"""
    kind = CertificateKind.STAKE_REGISTRATION if deposit is not None else CertificateKind.STAKE_KEY_REGISTRATION
    return Certificate(kind=kind, stake_credential=credential, deposit=deposit)


def deregistration(credential: StakeCredential, refund: int | None = None) -> Certificate:
    """Stake deregistration; Conway variant when an explicit refund is given"""
    kind = CertificateKind.STAKE_DEREGISTRATION if refund is not None else CertificateKind.STAKE_KEY_DEREGISTRATION
    return Certificate(kind=kind, stake_credential=credential, deposit=refund)


def delegation(credential: StakeCredential, pool_key_hash: str) -> Certificate:
    return Certificate(kind=CertificateKind.STAKE_DELEGATION, stake_credential=credential, pool_key_hash=pool_key_hash)


def total_deposits(certificates: Sequence[Certificate], params: ProtocolParameters) -> int:
    """Lovelace locked by registration certificates"""
    return sum(
        cert.deposit if cert.deposit is not None else params.stake_key_deposit
        for cert in certificates
        if cert.kind.is_registration
    )


def total_refunds(certificates: Sequence[Certificate], params: ProtocolParameters) -> int:
    """Lovelace returned by deregistration certificates"""
    return sum(
        cert.deposit if cert.deposit is not None else params.stake_key_deposit
        for cert in certificates
        if cert.kind.is_deregistration
    )


def requires_stake_witness(certificates: Sequence[Certificate]) -> bool:
    """Whether the stake key must sign (everything but legacy registration)"""
    return any(cert.kind != CertificateKind.STAKE_KEY_REGISTRATION for cert in certificates)
