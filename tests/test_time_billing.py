"""Seat-time rate calculator tests."""

from datetime import timedelta

import pytest

from conftest import T0


class TestCharge:
    @pytest.mark.parametrize("minutes, expected", [
        (-5, 0),
        (0, 0),
        (1, 500),
        (60, 500),
        (61, 750),
        (90, 750),
        (91, 1000),
        (120, 1000),
        (121, 1200),
        (150, 1200),
        (151, 1400),
        (270, 2000),
        (300, 2200),
        (1000, 2200),
    ])
    def test_known_points(self, minutes, expected):
        from app.services.time_billing import charge

        assert charge(minutes).total == expected

    def test_just_below_cap_is_cheaper_than_cap(self):
        from app.services.time_billing import charge

        assert charge(299).total < 2200
        assert charge(299).tier == "extended"

    def test_monotonic_up_to_cap(self):
        from app.services.time_billing import charge

        totals = [charge(m).total for m in range(0, 400)]
        assert totals == sorted(totals)
        assert all(t == 2200 for t in totals[300:])

    def test_tiers(self):
        from app.services.time_billing import charge

        assert charge(0).tier == "none"
        assert charge(45).tier == "standard"
        assert charge(200).tier == "extended"
        assert charge(300).tier == "capped"

    def test_breakdown_and_minor_units(self):
        from app.services.time_billing import charge

        billing = charge(150)
        assert billing.breakdown == {"hours": 2, "half_hours": 0, "extended_blocks": 1}
        assert billing.total_minor == 120000


class TestDescribe:
    def test_free(self):
        from app.services.time_billing import charge, describe

        assert describe(charge(0)) == "不收计时费"

    def test_capped_mentions_cap(self):
        from app.services.time_billing import charge, describe

        assert "封顶" in describe(charge(320))

    def test_format_duration(self):
        from app.services.time_billing import format_duration

        assert format_duration(45) == "45分"
        assert format_duration(125) == "2小时5分"


class TestEstimate:
    def test_running_timer(self):
        from app.services.time_billing import estimate

        assert estimate(T0, T0 + timedelta(minutes=75)).total == 750

    def test_naive_start_is_treated_as_utc(self):
        from app.services.time_billing import estimate

        naive = T0.replace(tzinfo=None)
        assert estimate(naive, T0 + timedelta(minutes=30)).total == 500
