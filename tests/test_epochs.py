"""
Epoch Clock Tests
"""

from datetime import datetime, timedelta, timezone

import pytest

from cardano_delegation.enums import NetworkType
from cardano_delegation.epochs import EPOCH_SCHEDULES, EpochClock
from cardano_delegation.schemas import ChainTip

MAINNET_SHELLEY_START = 1_596_059_091
PREVIEW_START = 1_666_656_000


class TestEpochArithmetic:
    def test_mainnet_slot_to_epoch(self):
        clock = EpochClock(NetworkType.MAINNET)
        assert clock.epoch_for_slot(4_492_800) == 208
        assert clock.epoch_for_slot(4_492_800 + 432_000) == 209
        assert clock.epoch_for_slot(4_492_800 + 432_000 * 100 - 1) == 307

    def test_slot_before_shelley_rejected(self):
        with pytest.raises(ValueError):
            EpochClock(NetworkType.MAINNET).epoch_for_slot(1_000)

    def test_mainnet_time_to_epoch(self):
        clock = EpochClock(NetworkType.MAINNET)
        assert clock.epoch_for_time(MAINNET_SHELLEY_START) == 208
        assert clock.epoch_for_time(MAINNET_SHELLEY_START + 5 * 432_000 + 1) == 213

    def test_preview_one_day_epochs(self):
        clock = EpochClock(NetworkType.PREVIEW)
        assert clock.epoch_for_time(PREVIEW_START + 86_400 * 10 + 5) == 10
        assert clock.epoch_for_slot(86_400 * 3) == 3

    def test_epoch_start_time(self):
        clock = EpochClock(NetworkType.MAINNET)
        assert clock.epoch_start_time(208) == datetime.fromtimestamp(MAINNET_SHELLEY_START, tz=timezone.utc)
        assert clock.epoch_start_time(209) - clock.epoch_start_time(208) == timedelta(days=5)


class TestCurrentEpoch:
    """Degrading epoch sources"""

    def test_live_epoch(self):
        assert EpochClock(NetworkType.MAINNET).current_epoch({"epoch": 450}) == 450

    def test_chain_tip_model(self):
        assert EpochClock(NetworkType.MAINNET).current_epoch(ChainTip(epoch=451, slot=1)) == 451

    def test_slot_when_epoch_missing(self):
        tip = ChainTip(slot=4_492_800 + 432_000 * 2)
        assert EpochClock(NetworkType.MAINNET).current_epoch(tip) == 210

    def test_negative_epoch_falls_through(self):
        clock = EpochClock(NetworkType.PREVIEW, clock=lambda: PREVIEW_START + 86_400 * 7)
        assert clock.current_epoch({"epoch": -1}) == 7

    def test_wall_clock(self):
        clock = EpochClock(NetworkType.PREVIEW, clock=lambda: PREVIEW_START + 86_400 * 42 + 60)
        assert clock.current_epoch() == 42

    @pytest.mark.parametrize(
        "network,expected",
        [(NetworkType.MAINNET, 500), (NetworkType.PREPROD, 100), (NetworkType.PREVIEW, 100)],
    )
    def test_conservative_estimate(self, network, expected):
        clock = EpochClock(network, clock=lambda: 0)
        assert clock.current_epoch({"epoch": "unknown"}) == expected


class TestActivationTiming:
    def test_activation_two_epochs_later(self):
        timing = EpochClock(NetworkType.MAINNET).activation_timing(450)

        assert timing.activation_epoch == 452
        assert timing.rewards_epoch == 453
        assert timing.epochs_until_active == 2
        assert not timing.is_immediately_active
        assert timing.activation_time == EpochClock(NetworkType.MAINNET).epoch_start_time(452)

    def test_wait_near_epoch_end(self):
        end_of_epoch = PREVIEW_START + 86_400 * 5 - 3_600
        timing = EpochClock(NetworkType.PREVIEW, clock=lambda: end_of_epoch).optimal_timing()

        assert timing.recommend_wait
        assert timing.current_epoch == 4
        assert timing.time_until_next_epoch == timedelta(hours=1)

    def test_no_wait_early_in_epoch(self):
        start_of_epoch = PREVIEW_START + 86_400 * 5 + 3_600
        timing = EpochClock(NetworkType.PREVIEW, clock=lambda: start_of_epoch).optimal_timing()

        assert not timing.recommend_wait
        assert timing.current_epoch == 5

    def test_min_seconds_between_delegations(self):
        assert EpochClock(NetworkType.MAINNET).min_seconds_between_delegations == 3_600
        assert EPOCH_SCHEDULES[NetworkType.PREPROD].epoch_duration == timedelta(days=1)
