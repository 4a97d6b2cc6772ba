# src/rogers_castro.py
"""
Rogers-Castro model migration schedule.

The schedule combines a childhood component decaying with age, a labour-force
peak and a constant:

    M(x) = a1 * exp(-alpha1 * x)
         + a2 * exp(alpha2 * (x - mu2) - exp(lambda2 * (x - mu2)))
         + c

Only this reduced form is evaluated; the retirement and elderly components
found in the wider literature are not part of the parameter set.
"""
from __future__ import annotations

import logging
from types import MappingProxyType

import numpy as np
import pandas as pd

from errors import InvalidInput, InvalidParameters


# ---------------------------------------------------------------------
# Parameter sets
# ---------------------------------------------------------------------
RC9_PARAM_NAMES = ("a1", "alpha1", "a2", "alpha2", "mu2", "lambda2", "c")

# Fundamental parameters of Rogers and Castro (1981).
RC9_FUND = MappingProxyType({
    "a1": 0.02,
    "alpha1": 0.1,
    "a2": 0.06,
    "alpha2": 0.1,
    "mu2": 20.0,
    "lambda2": 0.4,
    "c": 0.003,
})


def _validate_params(param) -> dict:
    """
    Check that `param` carries exactly the recognised names with numeric values.
    Returns a plain dict of floats.
    """
    if param is None:
        param = RC9_FUND
    try:
        names = set(param.keys())
    except AttributeError:
        raise InvalidParameters(
            f"Parameters must be a mapping of {list(RC9_PARAM_NAMES)}, got {type(param).__name__}"
        )

    missing = [p for p in RC9_PARAM_NAMES if p not in names]
    unknown = sorted(str(p) for p in names - set(RC9_PARAM_NAMES))
    if missing or unknown:
        msg = []
        if missing:
            msg.append(f"missing {missing}")
        if unknown:
            msg.append(f"unrecognised {unknown}")
        raise InvalidParameters(f"Invalid Rogers-Castro parameters: {'; '.join(msg)}")

    out = {}
    for p in RC9_PARAM_NAMES:
        try:
            v = float(param[p])
        except (TypeError, ValueError):
            raise InvalidParameters(f"Parameter {p!r} must be numeric, got {param[p]!r}")
        if not np.isfinite(v):
            raise InvalidParameters(f"Parameter {p!r} must be finite, got {v}")
        out[p] = v
    return out


def _validate_ages(x) -> np.ndarray:
    try:
        ages = np.asarray(x, dtype=float)
    except (TypeError, ValueError):
        raise InvalidInput("Ages must be numeric.")
    if ages.ndim == 0:
        ages = ages.reshape(1)
    if ages.ndim != 1:
        raise InvalidInput(f"Ages must be one-dimensional, got shape {ages.shape}")
    if not np.all(np.isfinite(ages)):
        raise InvalidInput("Ages must be finite.")
    if np.any(ages < 0):
        raise InvalidInput(f"Ages must be non-negative, got min {ages.min()}")
    return ages


# ---------------------------------------------------------------------
# Schedule
# ---------------------------------------------------------------------
def compute_rc9(x, param=None, scaled: bool = True) -> np.ndarray:
    """
    Evaluate the Rogers-Castro migration schedule at ages `x`.

    Parameters
    ----------
    x : array-like
        Ages (single-year, five-year or any other granularity), non-negative.
    param : Mapping[str, float], optional
        Parameter set with exactly the names in RC9_PARAM_NAMES.
        Defaults to RC9_FUND.
    scaled : bool
        If True, rescale so that the returned values sum to one over `x`.

    Returns
    -------
    np.ndarray
        Migration intensities aligned to `x`.

    Raises
    ------
    InvalidParameters
        If a name is missing, unrecognised or non-numeric.
    InvalidInput
        If ages are negative, non-finite or cannot be scaled.
    """
    p = _validate_params(param)
    ages = _validate_ages(x)

    labour = ages - p["mu2"]
    # exp(lambda2 * (x - mu2)) overflows at very old ages; the peak term is then 0.
    with np.errstate(over="ignore"):
        mx = (
            p["a1"] * np.exp(-p["alpha1"] * ages)
            + p["a2"] * np.exp(p["alpha2"] * labour - np.exp(p["lambda2"] * labour))
            + p["c"]
        )

    if np.any(mx < 0):
        logging.warning("[rc9] Schedule has negative values; check the parameter signs.")

    if scaled and mx.size:
        total = float(mx.sum())
        if total == 0.0 or not np.isfinite(total):
            raise InvalidInput(f"Cannot scale schedule with total {total}.")
        mx = mx / total
    return mx


def rc9_frame(x, param=None, scaled: bool = True) -> pd.DataFrame:
    """
    Tabulate the schedule as a DataFrame with columns 'age' and 'mx'.
    """
    mx = compute_rc9(x, param=param, scaled=scaled)
    return pd.DataFrame({"age": _validate_ages(x), "mx": mx})
