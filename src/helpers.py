# src/helpers.py
"""
General-purpose helpers shared across the toolkit.

This module centralizes reusable utilities that are agnostic to domain specifics:
- Liberal header detection for reference CSVs.
- List/string coercions for config values (e.g. lump tokens "in;out").
- Filename suffix manipulation.
- Default dimension labels for unnamed matrices.

All functions are pure and side-effect free.

IMPORTANT: This module does not import project-specific modules to avoid circular
dependencies. Callers must supply any configuration defaults they need.
"""
from __future__ import annotations

import os
import string

import pandas as pd


# ---------------------------------------------------------------------------
# CSV helpers
# ---------------------------------------------------------------------------

def _find_col(df: pd.DataFrame, must_include: list[str]) -> str | None:
    """
    Return the first column name in `df` whose lowercase name contains *all*
    substrings in `must_include`. Used for robust header detection.

    Parameters
    ----------
    df : pd.DataFrame
        DataFrame with candidate columns.
    must_include : list[str]
        Substrings that must all appear in the lowercase column name.

    Returns
    -------
    str | None
        Original column name or None if not found.
    """
    low = {str(c).lower(): c for c in df.columns}
    for lc, orig in low.items():
        if all(s in lc for s in must_include):
            return orig
    return None


# ---------------------------------------------------------------------------
# List / string coercions for config-like values
# ---------------------------------------------------------------------------

def _coerce_list(x):
    """
    Coerce input to a flat list of strings.

    Rules
    -----
    - If `x` is a list/tuple/set, flatten one level; split any string items on ';' or ','.
    - If `x` is a string, split on ';' or ',' and strip.
    - Otherwise return None (caller should fall back to project defaults).

    Parameters
    ----------
    x : Any

    Returns
    -------
    list[str] | None
    """
    if isinstance(x, (list, tuple, set, frozenset)):
        flat: list[str] = []
        for it in x:
            if isinstance(it, (list, tuple)):
                flat.extend(str(s).strip() for s in it)
            elif isinstance(it, str) and (";" in it or "," in it):
                flat.extend(
                    [s.strip() for s in it.replace(",", ";").split(";") if s.strip()]
                )
            else:
                flat.append(str(it).strip())
        return flat
    if isinstance(x, str):
        if ";" in x or "," in x:
            return [s.strip() for s in x.replace(",", ";").split(";") if s.strip()]
        return [x.strip()] if x.strip() else []
    return None


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------

def _with_suffix(fname: str, suffix: str) -> str:
    """
    Insert a suffix before the file extension.

    Example
    -------
    _with_suffix("foo.csv", "_bar") -> "foo_bar.csv"
    """
    if not suffix:
        return fname
    base, ext = os.path.splitext(fname)
    return f"{base}{suffix}{ext}"


# ---------------------------------------------------------------------------
# Matrix labels
# ---------------------------------------------------------------------------

def _dim_labels(n: int) -> list[str]:
    """
    Spreadsheet-style labels 'A', 'B', ..., 'Z', 'AA', 'AB', ... for an
    unnamed matrix dimension of length `n`.
    """
    letters = string.ascii_uppercase
    out = []
    for i in range(n):
        label = ""
        k = i
        while True:
            label = letters[k % 26] + label
            k = k // 26 - 1
            if k < 0:
                break
        out.append(label)
    return out
