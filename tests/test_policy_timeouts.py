"""Tests for mode-aware timeout budgets."""

import pytest

from e2eguard.models.test_mode import TestMode
from e2eguard.models.timeouts import TimeoutOperation
from e2eguard.policy.timeouts import (
    ADJUSTED_TIMEOUT_CEILING,
    BASE_TIMEOUTS,
    MAX_TIMEOUTS,
    calculate_timeout,
    create_custom_timeout_config,
    derive_config,
    get_adjusted_timeout,
    get_environment_timeouts,
    get_multiplier,
    ordering_violations,
)


class TestCalculateTimeout:
    def test_local_uses_base(self):
        for op in TimeoutOperation:
            assert calculate_timeout(op, TestMode.LOCAL_DEVELOPMENT) == BASE_TIMEOUTS[op]

    def test_ci_scales_base(self):
        assert calculate_timeout(TimeoutOperation.ELEMENT_WAIT, TestMode.CI_FUNCTIONAL) == 25_000

    def test_accepts_operation_name(self):
        assert calculate_timeout("navigation", TestMode.LOCAL_DEVELOPMENT) == 30_000

    @pytest.mark.parametrize("multiplier", [0.001, 0.5, 1, 3, 10, 1000])
    def test_always_within_bounds(self, multiplier):
        for mode in TestMode:
            for op in TimeoutOperation:
                value = calculate_timeout(op, mode, multiplier)
                assert 1 <= value <= MAX_TIMEOUTS[op]

    def test_ceiling_applies(self):
        assert calculate_timeout(TimeoutOperation.NAVIGATION, TestMode.CI_FULL, 100) == 120_000

    @pytest.mark.parametrize("multiplier", [0, -1])
    def test_non_positive_multiplier_rejected(self, multiplier):
        with pytest.raises(ValueError):
            calculate_timeout(TimeoutOperation.NAVIGATION, TestMode.CI_FULL, multiplier)

    def test_unknown_operation_rejected(self):
        with pytest.raises(ValueError):
            calculate_timeout("teleport", TestMode.LOCAL_DEVELOPMENT)


class TestOrdering:
    def test_ci_never_below_local(self):
        local = derive_config(TestMode.LOCAL_DEVELOPMENT)
        for mode in TestMode:
            config = derive_config(mode)
            for op in TimeoutOperation:
                assert config.for_operation(op) >= local.for_operation(op)

    @pytest.mark.parametrize("mode", list(TestMode))
    @pytest.mark.parametrize("multiplier", [None, 0.001, 0.5, 1, 2.5, 4, 6, 10, 1000])
    def test_dependent_budgets_ordered(self, mode, multiplier):
        config = derive_config(mode, multiplier)
        assert config.form_ready >= config.element_wait
        assert config.network_idle > config.element_wait
        assert config.navigation >= config.network_idle
        assert ordering_violations(config) == []

    def test_full_is_most_generous(self):
        assert get_multiplier(TestMode.CI_FULL) == max(get_multiplier(m) for m in TestMode)

    def test_lightweight_below_functional(self):
        assert get_multiplier(TestMode.CI_LIGHTWEIGHT) < get_multiplier(TestMode.CI_FUNCTIONAL)


class TestCustomConfig:
    def test_environment_timeouts_match_derived(self):
        for mode in TestMode:
            assert get_environment_timeouts(mode) == derive_config(mode)

    def test_overrides_applied(self):
        config = create_custom_timeout_config(TestMode.LOCAL_DEVELOPMENT, {"element_wait": 1234})
        assert config.element_wait == 1234
        assert config.navigation == BASE_TIMEOUTS[TimeoutOperation.NAVIGATION]

    def test_overrides_clamped(self, caplog):
        config = create_custom_timeout_config(
            TestMode.LOCAL_DEVELOPMENT,
            {TimeoutOperation.ELEMENT_STABILITY: 10_000_000, TimeoutOperation.API_CALL: 0},
        )
        assert config.element_stability == MAX_TIMEOUTS[TimeoutOperation.ELEMENT_STABILITY]
        assert config.api_call == 1
        assert "clamped" in caplog.text

    def test_override_breaking_order_warns(self, caplog):
        config = create_custom_timeout_config(TestMode.LOCAL_DEVELOPMENT, {"element_wait": 60_000})
        assert config.element_wait == 60_000
        assert ordering_violations(config) == [
            "form_ready (15000ms) should be >= element_wait (60000ms)",
            "network_idle (20000ms) should be > element_wait (60000ms)",
        ]
        assert "break budget ordering" in caplog.text

    def test_consistent_override_quiet(self, caplog):
        create_custom_timeout_config(TestMode.LOCAL_DEVELOPMENT, {"navigation": 45_000})
        assert "break budget ordering" not in caplog.text


class TestAdjustedTimeout:
    def test_local_unchanged(self):
        assert get_adjusted_timeout(4000, TestMode.LOCAL_DEVELOPMENT) == 4000

    def test_ci_scaled(self):
        assert get_adjusted_timeout(4000, TestMode.CI_FULL) == 12_000

    def test_ceiling(self):
        assert get_adjusted_timeout(10**9, TestMode.CI_FULL) == ADJUSTED_TIMEOUT_CEILING
