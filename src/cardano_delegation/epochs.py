"""
Epoch Clock

Epoch numbers and delegation activation timing per network. Delegations
become active two epochs after the one they are submitted in and earn their
first rewards one epoch later.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Mapping

from cardano_delegation.enums import NetworkType
from cardano_delegation.schemas import ActivationTiming, ChainTip

logger = logging.getLogger(__name__)

ACTIVATION_DELAY_EPOCHS = 2
REWARDS_DELAY_EPOCHS = 3
LATE_EPOCH_WINDOW = timedelta(hours=2)


@dataclass(frozen=True)
class EpochSchedule:
    """Shelley-era epoch layout of a network"""

    epoch_length_slots: int
    slot_length_seconds: int
    start_epoch: int
    start_slot: int
    start_time: int  # unix seconds at the first slot of start_epoch
    conservative_epoch: int
    min_seconds_between_delegations: int

    @property
    def epoch_duration(self) -> timedelta:
        return timedelta(seconds=self.epoch_length_slots * self.slot_length_seconds)


EPOCH_SCHEDULES = {
    NetworkType.MAINNET: EpochSchedule(
        epoch_length_slots=432_000,
        slot_length_seconds=1,
        start_epoch=208,
        start_slot=4_492_800,
        start_time=1_596_059_091,  # 2020-07-29T21:44:51Z
        conservative_epoch=500,
        min_seconds_between_delegations=3_600,
    ),
    NetworkType.TESTNET: EpochSchedule(86_400, 1, 0, 0, 1_654_041_600, 100, 600),
    NetworkType.PREPROD: EpochSchedule(86_400, 1, 0, 0, 1_654_041_600, 100, 600),
    NetworkType.PREVIEW: EpochSchedule(86_400, 1, 0, 0, 1_666_656_000, 100, 600),
}


@dataclass(frozen=True)
class DelegationTiming:
    """Advice on whether to submit now or after the epoch boundary"""

    current_epoch: int
    time_until_next_epoch: timedelta
    recommend_wait: bool
    reason: str


class EpochClock:
    """
    Network-aware epoch arithmetic

    Args:
        network: Network whose schedule applies
        clock: Returns the current unix time in seconds
    """

    def __init__(self, network: NetworkType, clock: Callable[[], float] = time.time):
        self.network = network
        self.schedule = EPOCH_SCHEDULES[network]
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def epoch_for_slot(self, slot: int) -> int:
        if slot < self.schedule.start_slot:
            raise ValueError(f"slot {slot} predates the Shelley start slot")
        return self.schedule.start_epoch + (slot - self.schedule.start_slot) // self.schedule.epoch_length_slots

    def epoch_for_time(self, unix_seconds: float) -> int:
        elapsed = unix_seconds - self.schedule.start_time
        if elapsed < 0:
            raise ValueError("time predates the network start")
        return self.schedule.start_epoch + int(elapsed // self.schedule.epoch_duration.total_seconds())

    def epoch_start_time(self, epoch: int) -> datetime:
        offset = (epoch - self.schedule.start_epoch) * self.schedule.epoch_duration
        return datetime.fromtimestamp(self.schedule.start_time, tz=timezone.utc) + offset

    def current_epoch(self, network_params: ChainTip | Mapping[str, Any] | None = None) -> int:
        """
        Current epoch, degrading through the available sources

        Order: live ``epoch`` field, slot conversion, wall clock, and
        finally a fixed conservative estimate. Never raises.
        """
        if isinstance(network_params, ChainTip):
            network_params = network_params.model_dump()
        network_params = network_params or {}

        sources: list[tuple[str, Callable[[], int]]] = [
            ("live_epoch", lambda: int(network_params["epoch"])),
            ("slot", lambda: self.epoch_for_slot(int(network_params["slot"]))),
            ("wall_clock", lambda: self.epoch_for_time(self._clock())),
        ]
        errors = []
        for name, source in sources:
            try:
                epoch = source()
            except (KeyError, TypeError, ValueError, OverflowError) as e:
                errors.append(f"{name}: {type(e).__name__}")
                continue
            if epoch >= 0:
                return epoch
            errors.append(f"{name}: negative epoch")

        logger.warning(
            f"Epoch unavailable ({', '.join(errors)}), using conservative estimate {self.schedule.conservative_epoch}"
        )
        return self.schedule.conservative_epoch

    def activation_timing(self, current_epoch: int) -> ActivationTiming:
        """When a delegation submitted in ``current_epoch`` takes effect"""
        activation_epoch = current_epoch + ACTIVATION_DELAY_EPOCHS
        return ActivationTiming(
            current_epoch=current_epoch,
            activation_epoch=activation_epoch,
            epochs_until_active=ACTIVATION_DELAY_EPOCHS,
            is_immediately_active=False,
            rewards_epoch=current_epoch + REWARDS_DELAY_EPOCHS,
            activation_time=self.epoch_start_time(activation_epoch),
        )

    def time_until_next_epoch(self) -> timedelta:
        now = self._clock()
        epoch = self.epoch_for_time(now)
        next_start = self.epoch_start_time(epoch + 1).timestamp()
        return timedelta(seconds=next_start - now)

    def optimal_timing(self) -> DelegationTiming:
        """Recommend waiting when the current epoch is about to end"""
        remaining = self.time_until_next_epoch()
        epoch = self.epoch_for_time(self._clock())
        if remaining < LATE_EPOCH_WINDOW:
            return DelegationTiming(
                current_epoch=epoch,
                time_until_next_epoch=remaining,
                recommend_wait=True,
                reason="Epoch ends soon; the transaction may land in the next epoch",
            )
        return DelegationTiming(
            current_epoch=epoch,
            time_until_next_epoch=remaining,
            recommend_wait=False,
            reason="Good time to delegate",
        )

    @property
    def min_seconds_between_delegations(self) -> int:
        return self.schedule.min_seconds_between_delegations
