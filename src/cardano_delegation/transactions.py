"""
Transaction Assembly

Turns available UTXOs plus requested certificates, outputs and withdrawals
into an UnsignedTransactionDescriptor. Certificate sequencing and min-UTXO
checks run before coin selection and fee computation; the selection result
is re-checked before the descriptor is returned.
"""

import logging
from typing import Any, Mapping, Sequence

from cardano_delegation.addresses import parse_address
from cardano_delegation.assets import covers, merge_assets, total_assets, total_lovelace, utxos_from_raw
from cardano_delegation.certificates import CertificateSequencer, total_deposits, total_refunds
from cardano_delegation.chain_context import ChainBackend, PyCardanoBackend
from cardano_delegation.enums import NetworkType
from cardano_delegation.errors import ErrorCode, TransactionBuildError, UTXOSelectionError
from cardano_delegation.min_utxo import MinUtxoRule
from cardano_delegation.protocol_params import DEFAULT_PROTOCOL_PARAMETERS
from cardano_delegation.schemas import (
    UTXO,
    Certificate,
    ProtocolParameters,
    TransactionOutputSpec,
    UnsignedTransactionDescriptor,
    Withdrawal,
)

logger = logging.getLogger(__name__)

# Smallest signed transaction: one input, one output, one vkey witness
MIN_SIGNED_TX_SIZE = 150


class TransactionAssembler:
    """
    Builds unsigned staking and payment transactions

    Args:
        network: Network the change address must belong to
        backend: Chain-library backend for selection and serialization
        sequencer: Certificate sequence validator
    """

    def __init__(
        self,
        network: NetworkType,
        backend: ChainBackend | None = None,
        sequencer: CertificateSequencer | None = None,
    ):
        self.network = network
        self.backend = backend or PyCardanoBackend(network)
        self.sequencer = sequencer or CertificateSequencer()

    def build(
        self,
        available_utxos: Sequence[UTXO | Mapping[str, Any]],
        certificates: Sequence[Certificate],
        outputs: Sequence[TransactionOutputSpec],
        change_address: str,
        withdrawals: Sequence[Withdrawal] | None = None,
        params: ProtocolParameters | None = None,
        warnings: Sequence[str] = (),
    ) -> UnsignedTransactionDescriptor:
        """
        Build an unsigned transaction descriptor

        Args:
            available_utxos: Spendable UTXOs (models or raw provider records)
            certificates: Ordered stake certificates
            outputs: Requested outputs, excluding change
            change_address: Address receiving the change output
            withdrawals: Reward withdrawals
            params: Protocol parameters (defaults when None)
            warnings: Pre-flight warnings carried onto the descriptor

        Returns:
            Immutable UnsignedTransactionDescriptor

        Raises:
            ValidationError: Invalid change address
            TransactionBuildError: Certificate sequence, min-UTXO or balance violation
            UTXOSelectionError: Inputs cannot cover the transaction
        """
        params = params or DEFAULT_PROTOCOL_PARAMETERS
        withdrawals = list(withdrawals or [])
        certificates = list(certificates)
        outputs = list(outputs)

        parse_address(change_address, self.network)
        self.sequencer.validate(certificates)

        utxos = utxos_from_raw(available_utxos)
        if not utxos:
            raise UTXOSelectionError.selection_failed("no spendable UTXOs")

        min_utxo = MinUtxoRule(params)
        for output in outputs:
            min_utxo.ensure_output(output)

        deposits = total_deposits(certificates, params)
        refunds = total_refunds(certificates, params)
        self._check_sufficient(utxos, outputs, withdrawals, params, deposits, refunds)

        built = self.backend.select_and_build(utxos, outputs, change_address, certificates, withdrawals, params)

        for output in built.outputs:
            min_utxo.ensure_output(output)

        descriptor = UnsignedTransactionDescriptor(
            inputs=built.inputs,
            outputs=built.outputs,
            certificates=tuple(certificates),
            withdrawals=tuple(withdrawals),
            fee=built.fee,
            deposits=deposits,
            refunds=refunds,
            change_output=built.change_output,
            serialized_body=built.cbor_hex,
            body_hash=built.tx_hash,
            warnings=tuple(warnings),
        )
        self._check_descriptor(descriptor, params)

        logger.info(
            f"Assembled transaction: {len(descriptor.inputs)} inputs, {len(descriptor.outputs)} outputs, "
            f"{len(certificates)} certificates, fee {descriptor.fee}"
        )
        return descriptor

    def _check_sufficient(self, utxos, outputs, withdrawals, params, deposits, refunds) -> None:
        """Reject what no fee could cover: the backend sizes the real fee"""
        requested_assets = merge_assets(*(o.assets for o in outputs))
        if not covers(total_assets(utxos), requested_assets):
            raise UTXOSelectionError(
                ErrorCode.INSUFFICIENT_FUNDS,
                "Insufficient native assets to cover the requested outputs",
                {"assets": len(requested_assets)},
            )

        fee = params.min_fee_b + params.min_fee_a * MIN_SIGNED_TX_SIZE
        required = sum(o.lovelace for o in outputs) + deposits + fee
        available = total_lovelace(utxos) + refunds + sum(w.amount for w in withdrawals)
        if available < required:
            raise UTXOSelectionError.insufficient_funds(required, available)

    @staticmethod
    def _check_descriptor(descriptor: UnsignedTransactionDescriptor, params: ProtocolParameters) -> None:
        if descriptor.fee < params.min_fee_b:
            raise TransactionBuildError(
                ErrorCode.INVALID_FEE,
                f"Fee {descriptor.fee} is below the protocol minimum {params.min_fee_b}",
            )
        if not descriptor.is_balanced:
            raise TransactionBuildError(
                ErrorCode.UNBALANCED_TRANSACTION,
                "Transaction inputs and outputs do not balance",
                {
                    "inputs": descriptor.total_input,
                    "withdrawals": descriptor.total_withdrawals,
                    "refunds": descriptor.refunds,
                    "outputs": descriptor.total_output,
                    "fee": descriptor.fee,
                    "deposits": descriptor.deposits,
                },
            )
