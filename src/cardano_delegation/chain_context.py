"""
Cardano Chain Context

Network configuration and the chain-library backend that turns selected
inputs, outputs, certificates and withdrawals into a serialized
transaction body.
"""

import logging
import re
from fractions import Fraction
from typing import Sequence

import pycardano as pc

from cardano_delegation.addresses import credential_to_pycardano, to_pycardano_network
from cardano_delegation.assets import covers, from_value, merge_assets, subtract_assets, to_value, total_assets
from cardano_delegation.certificates import total_deposits, total_refunds
from cardano_delegation.config import BLOCKFROST_URLS
from cardano_delegation.enums import CertificateKind, NetworkType
from cardano_delegation.errors import TransactionBuildError, UTXOSelectionError
from cardano_delegation.schemas import (
    UTXO,
    BuiltTransaction,
    Certificate,
    ProtocolParameters,
    TransactionOutputSpec,
    Withdrawal,
)

logger = logging.getLogger(__name__)

# Plutus execution limits; only used to size the fee field placeholder
MAX_TX_EX_MEM = 14_000_000
MAX_TX_EX_STEPS = 10_000_000_000

EXPLORERS = {
    NetworkType.MAINNET: "https://cardanoscan.io",
    NetworkType.TESTNET: "https://preview.cardanoscan.io",
    NetworkType.PREPROD: "https://preprod.cardanoscan.io",
    NetworkType.PREVIEW: "https://preview.cardanoscan.io",
}


class CardanoChainContext:
    """Network configuration for a delegation session"""

    def __init__(self, network: NetworkType = NetworkType.TESTNET):
        """
        Initialize chain context

        Args:
            network: Configured network
        """
        self.network = network
        self.cardano_network = to_pycardano_network(network)
        self.base_url = BLOCKFROST_URLS[network]
        self.cardanoscan = EXPLORERS[network]

    def get_network_info(self) -> dict:
        """
        Get network configuration information

        Returns:
            Dictionary containing network information
        """
        return {
            "network": self.network.value,
            "cardano_network": self.cardano_network,
            "base_url": self.base_url,
            "cardanoscan": self.cardanoscan,
        }

    def get_explorer_url(self, tx_id: str) -> str:
        """Explorer URL for a transaction"""
        return f"{self.cardanoscan}/transaction/{tx_id}"


class ChainBackend:
    """Coin selection and serialization boundary"""

    def select_and_build(
        self,
        inputs: Sequence[UTXO],
        outputs: Sequence[TransactionOutputSpec],
        change_address: str,
        certificates: Sequence[Certificate],
        withdrawals: Sequence[Withdrawal],
        params: ProtocolParameters,
    ) -> BuiltTransaction:
        raise NotImplementedError()


def to_pycardano_protocol_parameters(params: ProtocolParameters) -> pc.ProtocolParameters:
    """Fill pycardano's parameter record; fields the builder never reads get mainnet values"""
    return pc.ProtocolParameters(
        min_fee_constant=params.min_fee_b,
        min_fee_coefficient=params.min_fee_a,
        max_block_size=90_112,
        max_tx_size=params.max_tx_size,
        max_block_header_size=1_100,
        key_deposit=params.stake_key_deposit,
        pool_deposit=params.pool_deposit,
        pool_influence=Fraction(3, 10),
        monetary_expansion=Fraction(3, 1000),
        treasury_expansion=Fraction(1, 5),
        decentralization_param=Fraction(0),
        extra_entropy="",
        protocol_major_version=10,
        protocol_minor_version=0,
        min_utxo=1_000_000,
        min_pool_cost=170_000_000,
        price_mem=Fraction(str(params.price_mem)),
        price_step=Fraction(str(params.price_step)),
        max_tx_ex_mem=MAX_TX_EX_MEM,
        max_tx_ex_steps=MAX_TX_EX_STEPS,
        max_block_ex_mem=62_000_000,
        max_block_ex_steps=20_000_000_000,
        max_val_size=params.max_value_size,
        collateral_percent=params.collateral_percent,
        max_collateral_inputs=params.max_collateral_inputs,
        coins_per_utxo_word=params.lovelace_per_utxo_word,
        coins_per_utxo_byte=params.lovelace_per_utxo_byte,
        cost_models={},
    )


class OfflineChainContext(pc.ChainContext):
    """
    pycardano chain context over already-fetched data

    Serves the transaction builder and the min-UTXO calculation without
    network access. UTXOs are the ones the caller handed in.
    """

    def __init__(
        self,
        params: ProtocolParameters,
        network: NetworkType = NetworkType.TESTNET,
        utxos: Sequence[pc.UTxO] = (),
    ):
        self.params = params
        self._network = to_pycardano_network(network)
        self._protocol_param = to_pycardano_protocol_parameters(params)
        self._known_utxos = list(utxos)

    @property
    def protocol_param(self) -> pc.ProtocolParameters:
        return self._protocol_param

    @property
    def network(self) -> pc.Network:
        return self._network

    def _utxos(self, address: str) -> list[pc.UTxO]:
        return [utxo for utxo in self._known_utxos if str(utxo.output.address) == address]


class DelegationTransactionBuilder(pc.TransactionBuilder):
    """TransactionBuilder that also credits deregistration refunds to the inputs side"""

    key_refund: int = 0

    def _get_total_key_deposit(self):
        return super()._get_total_key_deposit() - self.key_refund


def to_pycardano_certificate(cert: Certificate):
    """Map a certificate onto its pycardano ledger type"""
    credential = pc.StakeCredential(credential_to_pycardano(cert.stake_credential))

    if cert.kind == CertificateKind.STAKE_KEY_REGISTRATION:
        return pc.StakeRegistration(credential)
    if cert.kind == CertificateKind.STAKE_KEY_DEREGISTRATION:
        return pc.StakeDeregistration(credential)
    if cert.kind == CertificateKind.STAKE_DELEGATION:
        return pc.StakeDelegation(credential, pool_keyhash=pc.PoolKeyHash(bytes.fromhex(cert.pool_key_hash)))
    if cert.kind == CertificateKind.STAKE_REGISTRATION:
        return pc.StakeRegistrationConway(credential, cert.deposit)
    if cert.kind == CertificateKind.STAKE_DEREGISTRATION:
        return pc.StakeDeregistrationConway(credential, cert.deposit)
    raise TransactionBuildError.build_failed(f"unsupported certificate kind {cert.kind}")


def to_pycardano_output(output: TransactionOutputSpec) -> pc.TransactionOutput:
    return pc.TransactionOutput(pc.Address.from_primitive(output.address), to_value(output.lovelace, output.assets))


def to_pycardano_utxo(utxo: UTXO) -> pc.UTxO:
    return pc.UTxO(
        pc.TransactionInput(pc.TransactionId(bytes.fromhex(utxo.tx_hash)), utxo.output_index),
        pc.TransactionOutput(pc.Address.from_primitive(utxo.address), to_value(utxo.lovelace, utxo.assets)),
    )


def from_pycardano_output(output: pc.TransactionOutput) -> TransactionOutputSpec:
    lovelace, assets = from_value(output.amount)
    return TransactionOutputSpec(address=str(output.address), lovelace=lovelace, assets=assets)


class PyCardanoBackend(ChainBackend):
    """
    pycardano TransactionBuilder over an offline chain context

    The largest UTXO is always spent and the builder's selectors (largest-first,
    then random-improve) add more until outputs, deposits, fee and a valid
    change output are covered. The fee is sized against fake witnesses for
    every required signer. When the leftover cannot form a change output it
    is paid as fee instead.
    """

    def __init__(self, network: NetworkType = NetworkType.TESTNET):
        self.network = network

    def select_and_build(
        self,
        inputs: Sequence[UTXO],
        outputs: Sequence[TransactionOutputSpec],
        change_address: str,
        certificates: Sequence[Certificate],
        withdrawals: Sequence[Withdrawal],
        params: ProtocolParameters,
    ) -> BuiltTransaction:
        if not inputs:
            raise UTXOSelectionError.selection_failed("no spendable inputs")

        by_key = {(u.tx_hash, u.output_index): u for u in inputs}
        utxos = {key: to_pycardano_utxo(u) for key, u in by_key.items()}
        context = OfflineChainContext(params, self.network, list(utxos.values()))

        # A transaction needs at least one input even when withdrawals cover it
        largest = max(by_key, key=lambda key: (by_key[key].lovelace, key))
        builder = self._new_builder(context, outputs, certificates, withdrawals, params)
        builder.add_input(utxos[largest])
        builder.potential_inputs.extend(utxo for key, utxo in utxos.items() if key != largest)

        try:
            body = self._build(builder, pc.Address.from_primitive(change_address), params)
        except (pc.UTxOSelectionException, pc.InvalidTransactionException) as e:
            logger.debug(f"No room for a change output: {e}")
            builder = self._new_builder(context, outputs, certificates, withdrawals, params)
            for utxo in utxos.values():
                builder.add_input(utxo)
            body = self._build_without_change(
                builder, change_address, inputs, outputs, certificates, withdrawals, params
            )

        selected = tuple(by_key[(i.transaction_id.payload.hex(), i.index)] for i in body.inputs)
        change_outputs = [from_pycardano_output(o) for o in body.outputs[len(outputs) :]]

        logger.debug(f"Built transaction with {len(selected)} inputs, fee {body.fee}")
        return BuiltTransaction(
            cbor_hex=body.to_cbor_hex(),
            tx_hash=body.id.payload.hex(),
            inputs=selected,
            outputs=tuple(outputs) + tuple(change_outputs),
            change_output=change_outputs[-1] if change_outputs else None,
            fee=body.fee,
        )

    @staticmethod
    def _new_builder(context, outputs, certificates, withdrawals, params) -> DelegationTransactionBuilder:
        builder = DelegationTransactionBuilder(context)
        builder.key_refund = total_refunds(certificates, params)
        for output in outputs:
            builder.add_output(to_pycardano_output(output))
        if certificates:
            builder.certificates = [to_pycardano_certificate(c) for c in certificates]
        if withdrawals:
            builder.withdrawals = pc.Withdrawals(
                {pc.Address.from_primitive(w.reward_address).to_primitive(): w.amount for w in withdrawals}
            )
        return builder

    @staticmethod
    def _build(builder: pc.TransactionBuilder, change_address, params: ProtocolParameters) -> pc.TransactionBody:
        try:
            return builder.build(change_address=change_address)
        except pc.InvalidTransactionException as e:
            size = re.search(r"Transaction size \((\d+)\) exceeds the max limit", str(e))
            if size:
                raise TransactionBuildError.too_large(int(size.group(1)), params.max_tx_size) from e
            raise

    def _build_without_change(
        self, builder, change_address, inputs, outputs, certificates, withdrawals, params
    ) -> pc.TransactionBody:
        """Spend every input with no change output; the leftover lovelace goes to the fee"""
        available = sum(u.lovelace for u in inputs) + total_refunds(certificates, params)
        available += sum(w.amount for w in withdrawals)
        required = sum(o.lovelace for o in outputs) + total_deposits(certificates, params)

        try:
            body = self._build(builder, None, params)
        except pc.UTxOSelectionException as e:
            raise UTXOSelectionError.insufficient_funds(required + params.min_fee_b, available) from e
        except pc.PyCardanoException as e:
            raise TransactionBuildError.build_failed(str(e), cause=e) from e

        leftover = available - required - body.fee
        if leftover < 0:
            raise UTXOSelectionError.insufficient_funds(required + body.fee, available)
        held = total_assets(inputs)
        wanted = merge_assets(*(o.assets for o in outputs))
        if not covers(held, wanted) or subtract_assets(held, wanted):
            # Native assets cannot be paid as fee
            raise UTXOSelectionError.insufficient_funds(required + body.fee, available)

        change = pc.TransactionOutput(pc.Address.from_primitive(change_address), pc.Value(leftover))
        minimum = pc.min_lovelace_post_alonzo(change, builder.context)
        if leftover >= minimum:
            raise UTXOSelectionError.selection_failed(
                f"{leftover} lovelace left over but no selection produced a change output", minimum=minimum
            )
        body.fee += leftover
        return body
