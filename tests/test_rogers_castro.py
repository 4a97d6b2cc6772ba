# tests/test_rogers_castro.py
import math
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from errors import InvalidInput, InvalidParameters
from rogers_castro import RC9_FUND, RC9_PARAM_NAMES, compute_rc9, rc9_frame


def _rc9_by_hand(x, p):
    return (
        p["a1"] * math.exp(-p["alpha1"] * x)
        + p["a2"] * math.exp(p["alpha2"] * (x - p["mu2"]) - math.exp(p["lambda2"] * (x - p["mu2"])))
        + p["c"]
    )


# ============================================================================
# Test Fixtures
# ============================================================================
@pytest.fixture
def ages():
    return np.arange(1, 101)


@pytest.fixture
def custom_params():
    return {"a1": 0.03, "alpha1": 0.08, "a2": 0.05, "alpha2": 0.12,
            "mu2": 22.0, "lambda2": 0.35, "c": 0.002}


# ============================================================================
# Test Basic Functionality
# ============================================================================
class TestBasicFunctionality:
    """Test schedule evaluation."""

    def test_length_matches_ages(self, ages):
        result = compute_rc9(ages, RC9_FUND)
        assert len(result) == 100

    def test_scaled_sums_to_one(self, ages):
        result = compute_rc9(ages, RC9_FUND, scaled=True)
        assert abs(result.sum() - 1.0) < 1e-12

    def test_scaled_is_default(self, ages):
        np.testing.assert_array_equal(compute_rc9(ages, RC9_FUND), compute_rc9(ages, RC9_FUND, scaled=True))

    def test_unscaled_matches_formula(self, custom_params):
        x = [0, 5, 20, 35, 70]
        result = compute_rc9(x, custom_params, scaled=False)
        expected = [_rc9_by_hand(a, custom_params) for a in x]
        np.testing.assert_allclose(result, expected, rtol=1e-12)

    def test_scaled_is_unscaled_over_total(self, ages, custom_params):
        raw = compute_rc9(ages, custom_params, scaled=False)
        scaled = compute_rc9(ages, custom_params, scaled=True)
        np.testing.assert_allclose(scaled, raw / raw.sum())

    def test_unscaled_does_not_sum_to_one(self, ages):
        result = compute_rc9(ages, RC9_FUND, scaled=False)
        assert abs(result.sum() - 1.0) > 1e-3

    def test_default_params_are_fundamental(self, ages):
        np.testing.assert_array_equal(compute_rc9(ages), compute_rc9(ages, RC9_FUND))

    def test_deterministic(self, ages, custom_params):
        a = compute_rc9(ages, custom_params)
        b = compute_rc9(ages, custom_params)
        np.testing.assert_array_equal(a, b)

    def test_preserves_age_order(self, custom_params):
        x = [40, 10, 25]
        result = compute_rc9(x, custom_params, scaled=False)
        expected = [_rc9_by_hand(a, custom_params) for a in x]
        np.testing.assert_allclose(result, expected)


# ============================================================================
# Test Age Inputs
# ============================================================================
class TestAgeInputs:
    """Test accepted age granularities and containers."""

    def test_five_year_ages(self):
        x = np.arange(0, 85, 5)
        result = compute_rc9(x, RC9_FUND)
        assert len(result) == 17
        assert abs(result.sum() - 1.0) < 1e-12

    def test_fractional_ages(self):
        result = compute_rc9([0.5, 1.5, 2.5], RC9_FUND, scaled=False)
        assert len(result) == 3

    def test_series_input(self, ages):
        s = pd.Series(ages, index=[f"age_{a}" for a in ages])
        np.testing.assert_allclose(compute_rc9(s, RC9_FUND), compute_rc9(ages, RC9_FUND))

    def test_scalar_age(self):
        result = compute_rc9(25, RC9_FUND, scaled=False)
        assert result.shape == (1,)
        assert np.isclose(result[0], _rc9_by_hand(25, RC9_FUND))

    def test_age_zero_allowed(self):
        result = compute_rc9([0], RC9_FUND, scaled=False)
        assert np.isclose(result[0], _rc9_by_hand(0, RC9_FUND))

    def test_empty_ages(self):
        result = compute_rc9([], RC9_FUND)
        assert result.size == 0

    def test_very_old_ages_are_finite(self):
        result = compute_rc9([500, 1000, 5000], RC9_FUND, scaled=False)
        assert np.all(np.isfinite(result))
        # Only the childhood tail and constant remain
        assert np.isclose(result[-1], RC9_FUND["c"])


# ============================================================================
# Test Errors
# ============================================================================
class TestErrors:
    """Test parameter and age validation."""

    def test_missing_parameter(self):
        params = dict(RC9_FUND)
        del params["mu2"]
        with pytest.raises(InvalidParameters, match="mu2"):
            compute_rc9([1, 2, 3], params)

    def test_misnamed_parameter(self):
        params = dict(RC9_FUND)
        params["lamda2"] = params.pop("lambda2")
        with pytest.raises(InvalidParameters):
            compute_rc9([1, 2, 3], params)

    def test_unknown_extra_parameter(self):
        params = dict(RC9_FUND, a3=0.001)
        with pytest.raises(InvalidParameters, match="a3"):
            compute_rc9([1, 2, 3], params)

    def test_non_numeric_parameter(self):
        params = dict(RC9_FUND, c="high")
        with pytest.raises(InvalidParameters):
            compute_rc9([1, 2, 3], params)

    def test_non_mapping_parameters(self):
        with pytest.raises(InvalidParameters):
            compute_rc9([1, 2, 3], [0.02, 0.1])

    def test_negative_age(self):
        with pytest.raises(InvalidInput):
            compute_rc9([-1, 0, 1], RC9_FUND)

    def test_nan_age(self):
        with pytest.raises(InvalidInput):
            compute_rc9([1, np.nan], RC9_FUND)

    def test_non_numeric_age(self):
        with pytest.raises(InvalidInput):
            compute_rc9(["ten", "twenty"], RC9_FUND)

    def test_two_dimensional_ages(self):
        with pytest.raises(InvalidInput):
            compute_rc9(np.ones((2, 3)), RC9_FUND)

    def test_zero_total_cannot_scale(self):
        params = {p: 0.0 for p in RC9_PARAM_NAMES}
        with pytest.raises(InvalidInput):
            compute_rc9([1, 2, 3], params, scaled=True)

    def test_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            compute_rc9([-5], RC9_FUND)


# ============================================================================
# Test Parameter Set and Frame
# ============================================================================
class TestParameterSet:
    """Test the bundled fundamental parameters."""

    def test_fund_has_recognised_names(self):
        assert set(RC9_FUND) == set(RC9_PARAM_NAMES)

    def test_fund_is_read_only(self):
        with pytest.raises(TypeError):
            RC9_FUND["a1"] = 1.0

    def test_fund_values(self):
        assert RC9_FUND["mu2"] == 20.0
        assert RC9_FUND["c"] == 0.003


class TestFrame:
    """Test the tabulated schedule."""

    def test_columns_and_values(self, ages):
        df = rc9_frame(ages, RC9_FUND)
        assert list(df.columns) == ["age", "mx"]
        assert len(df) == 100
        np.testing.assert_allclose(df["mx"].to_numpy(), compute_rc9(ages, RC9_FUND))
        np.testing.assert_array_equal(df["age"].to_numpy(), ages.astype(float))
