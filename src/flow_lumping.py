# src/flow_lumping.py
"""
Sum and lump together small origin-destination flows into an "other" category.

Flow tables arrive either as a dense origin x destination matrix or as tidy
records (one row per origin, destination and optional grouping keys). Both
shapes are converted into one record frame; the input shape is remembered
only to decide whether a matrix can be handed back at the end.

Within each group (grouping keys, or the whole table when there are none):
  - 'in'/'imm'   : regions whose in-migration total is below the threshold
                   are relabelled where they appear as ORIGIN;
  - 'out'/'emi'  : regions whose out-migration total is below the threshold
                   are relabelled where they appear as DESTINATION;
  - 'flow'/'bilat': any single flow below the threshold has both its origin
                   and destination relabelled.
Rules stack on the already relabelled fields, then flows are re-summed.
"""
from __future__ import annotations

import logging
from collections.abc import Mapping

import numpy as np
import pandas as pd
from pandas.core.groupby import DataFrameGroupBy

from errors import DenseConversionUnsupported, InvalidArgument
from helpers import _coerce_list, _dim_labels

LUMP_TOKENS = {
    "flow": "flow", "bilat": "flow",
    "in": "in", "imm": "in",
    "out": "out", "emi": "out",
}

# Grouping column used when a mapping {key: matrix} is supplied.
DENSE_GROUP_COL = "group"


# ---------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------
def _parse_lump(lump) -> set[str]:
    """
    Map lump tokens ('flow', 'bilat', 'in', 'imm', 'out', 'emi') to the
    canonical rule names {'flow', 'in', 'out'}.
    """
    tokens = _coerce_list(lump)
    if tokens is None:
        raise InvalidArgument(
            f"lump must be a string or a list of strings, got {type(lump).__name__}"
        )
    bad = [t for t in tokens if t not in LUMP_TOKENS]
    if bad:
        raise InvalidArgument(
            f"lump is not recognised: {bad}. Choose from {sorted(LUMP_TOKENS)}"
        )
    if not tokens:
        raise InvalidArgument(f"lump must name at least one of {sorted(LUMP_TOKENS)}")
    return {LUMP_TOKENS[t] for t in tokens}


def _parse_threshold(threshold) -> float:
    try:
        t = float(threshold)
    except (TypeError, ValueError):
        raise InvalidArgument(f"threshold must be numeric, got {threshold!r}")
    if np.isnan(t):
        raise InvalidArgument("threshold must not be NaN")
    return t


# ---------------------------------------------------------------------
# Shape adapters
# ---------------------------------------------------------------------
def _as_matrix_frame(m) -> pd.DataFrame:
    """
    Return a copy of `m` as a labelled DataFrame (rows = origins,
    columns = destinations). Unnamed arrays get labels 'A', 'B', ...
    """
    if isinstance(m, pd.DataFrame):
        mat = m.copy()
    else:
        try:
            arr = np.asarray(m)
        except (TypeError, ValueError):
            raise InvalidArgument(f"Cannot read a flow matrix from {type(m).__name__}")
        if arr.ndim != 2:
            raise InvalidArgument(f"Flow matrix must be two-dimensional, got shape {arr.shape}")
        mat = pd.DataFrame(arr, index=_dim_labels(arr.shape[0]), columns=_dim_labels(arr.shape[1]))

    non_numeric = [c for c in mat.columns if not pd.api.types.is_numeric_dtype(mat[c])]
    if non_numeric:
        raise InvalidArgument(f"Flow matrix has non-numeric columns: {non_numeric}")
    mat.index = pd.Index([str(i) for i in mat.index])
    mat.columns = pd.Index([str(c) for c in mat.columns])
    return mat


def matrix_to_records(
    m,
    orig_col: str = "orig",
    dest_col: str = "dest",
    flow_col: str = "flow",
) -> pd.DataFrame:
    """
    Cross the row and column labels of a flow matrix into tidy records.

    Parameters
    ----------
    m : np.ndarray or pd.DataFrame
        Two-dimensional flows; first dimension origins, second destinations.

    Returns
    -------
    pd.DataFrame
        Columns [orig_col, dest_col, flow_col], one row per cell, origins
        varying fastest (column by column).
    """
    mat = _as_matrix_frame(m)
    mat = mat.rename_axis(index=orig_col, columns=dest_col)
    return (
        mat.reset_index()
           .melt(id_vars=orig_col, var_name=dest_col, value_name=flow_col)
           .reset_index(drop=True)
    )


def records_to_matrix(
    df: pd.DataFrame,
    orig_col: str = "orig",
    dest_col: str = "dest",
    flow_col: str = "flow",
    orig_levels=None,
    dest_levels=None,
    fill=0,
) -> pd.DataFrame:
    """
    Cross-tabulate tidy records into an origin x destination matrix.

    Rows and columns follow `orig_levels` / `dest_levels` when given,
    otherwise the order in which labels first appear. Cells without a
    record are set to `fill`.
    """
    missing = [c for c in (orig_col, dest_col, flow_col) if c not in df.columns]
    if missing:
        raise InvalidArgument(f"Records missing columns: {missing}")
    if df.duplicated([orig_col, dest_col]).any():
        raise InvalidArgument(
            "Records contain repeated origin-destination pairs; aggregate before converting."
        )
    if orig_levels is None:
        orig_levels = list(pd.unique(df[orig_col]))
    if dest_levels is None:
        dest_levels = list(pd.unique(df[dest_col]))

    cells = df.set_index([orig_col, dest_col])[flow_col]
    full = pd.MultiIndex.from_product([orig_levels, dest_levels], names=[orig_col, dest_col])
    mat = cells.reindex(full, fill_value=fill).unstack(dest_col)
    return mat.reindex(index=orig_levels, columns=dest_levels)


def _group_keys(keys) -> list:
    if isinstance(keys, (list, tuple)):
        return list(keys)
    return [keys]


def _as_records(m, orig_col, dest_col, flow_col, group_cols):
    """
    Canonicalize the supported input shapes.

    Returns
    -------
    (records, dense, group_cols)
        records : pd.DataFrame with columns group_cols + [orig, dest, flow]
        dense   : True when the input was a matrix (or mapping of matrices)
        group_cols : list of grouping columns
    """
    group_cols = _coerce_list(group_cols) or []
    needed = [orig_col, dest_col, flow_col]

    if len(set(needed)) != 3:
        raise InvalidArgument(f"orig_col, dest_col and flow_col must differ, got {needed}")

    if isinstance(m, DataFrameGroupBy):
        keys = _group_keys(m.keys)
        if not all(isinstance(k, str) and k in m.obj.columns for k in keys):
            raise InvalidArgument("Grouped flow tables must be grouped by column names.")
        group_cols = list(dict.fromkeys(keys + group_cols))
        m = m.obj

    if isinstance(m, Mapping):
        if group_cols:
            raise InvalidArgument("group_cols cannot be combined with a mapping of matrices.")
        frames = []
        for key, mat in m.items():
            rec = matrix_to_records(mat, orig_col, dest_col, flow_col)
            rec.insert(0, DENSE_GROUP_COL, [key] * len(rec))
            frames.append(rec)
        if not frames:
            raise InvalidArgument("Mapping of flow matrices is empty.")
        return _check_flows(pd.concat(frames, ignore_index=True), flow_col), True, [DENSE_GROUP_COL]

    if isinstance(m, list):
        if m and all(isinstance(r, Mapping) for r in m):
            m = pd.DataFrame.from_records(m)
        else:
            m = np.asarray(m)

    if isinstance(m, pd.DataFrame):
        # records need all three columns; a matrix may have a region named 'orig'
        has_record_cols = all(c in m.columns for c in needed)
        all_numeric = m.shape[1] > 0 and all(
            pd.api.types.is_numeric_dtype(m[c]) for c in m.columns
        )
        if not has_record_cols and all_numeric:
            if group_cols:
                raise InvalidArgument("group_cols cannot be combined with a flow matrix.")
            return _check_flows(matrix_to_records(m, orig_col, dest_col, flow_col), flow_col), True, []

        missing = [c for c in group_cols + needed if c not in m.columns]
        if missing:
            raise InvalidArgument(f"Flow table missing columns: {missing}")
        overlap = sorted(set(group_cols) & set(needed))
        if overlap:
            raise InvalidArgument(f"Grouping columns overlap flow columns: {overlap}")

        d = m[group_cols + needed].copy()
        if d.empty:
            d[flow_col] = d[flow_col].astype(float)
        d[orig_col] = d[orig_col].astype(str)
        d[dest_col] = d[dest_col].astype(str)
        return _check_flows(d.reset_index(drop=True), flow_col), False, group_cols

    if isinstance(m, np.ndarray):
        if group_cols:
            raise InvalidArgument("group_cols cannot be combined with a flow matrix.")
        return _check_flows(matrix_to_records(m, orig_col, dest_col, flow_col), flow_col), True, []

    raise InvalidArgument(f"Unsupported flow table type: {type(m).__name__}")


def _check_flows(d: pd.DataFrame, flow_col: str) -> pd.DataFrame:
    """Flows must be numeric and finite; NaN never compares below a threshold."""
    if not pd.api.types.is_numeric_dtype(d[flow_col]):
        raise InvalidArgument(f"Flow column {flow_col!r} must be numeric.")
    if not np.isfinite(d[flow_col].to_numpy(dtype=float)).all():
        raise InvalidArgument(f"Flow column {flow_col!r} contains missing or non-finite values.")
    return d


# ---------------------------------------------------------------------
# Region totals
# ---------------------------------------------------------------------
def sum_turnover(
    flows,
    orig_col: str = "orig",
    dest_col: str = "dest",
    flow_col: str = "flow",
    group_cols=None,
) -> pd.DataFrame:
    """
    In-migration, out-migration, turnover and net totals for every region.

    Parameters
    ----------
    flows : matrix, records DataFrame or DataFrameGroupBy
        Same inputs as `sum_lump`.
    orig_col, dest_col, flow_col : str
        Column names for record inputs.
    group_cols : list[str], optional
        Grouping keys; totals are computed within each group.

    Returns
    -------
    pd.DataFrame
        Columns group_cols + ['region', 'in_mig', 'out_mig', 'turn', 'net'],
        sorted by group then region. Regions that only send (or only
        receive) have 0 on the missing side.
    """
    d, _, group_cols = _as_records(flows, orig_col, dest_col, flow_col, group_cols)
    if "region" in group_cols:
        raise InvalidArgument("'region' cannot be used as a grouping column.")
    return _turnover(d, orig_col, dest_col, flow_col, group_cols)


def _turnover(d, orig_col, dest_col, flow_col, group_cols) -> pd.DataFrame:
    keys = list(group_cols)
    inflow = (
        d.groupby(keys + [dest_col], as_index=False, dropna=False)[flow_col].sum()
         .rename(columns={dest_col: "region", flow_col: "in_mig"})
    )
    outflow = (
        d.groupby(keys + [orig_col], as_index=False, dropna=False)[flow_col].sum()
         .rename(columns={orig_col: "region", flow_col: "out_mig"})
    )
    tot = inflow.merge(outflow, on=keys + ["region"], how="outer")
    tot[["in_mig", "out_mig"]] = tot[["in_mig", "out_mig"]].fillna(0)
    tot["turn"] = tot["in_mig"] + tot["out_mig"]
    tot["net"] = tot["in_mig"] - tot["out_mig"]
    return (
        tot.sort_values(keys + ["region"], kind="mergesort")
           .reset_index(drop=True)
    )


# ---------------------------------------------------------------------
# Lumping
# ---------------------------------------------------------------------
def _relabel_group(d, threshold, rules, other_level, orig_col, dest_col, flow_col):
    """
    Apply the in/out/flow relabelling rules to one group's records.
    Flagged regions are found on the records as given, before any relabelling.
    """
    out = d.copy()

    imm_lump = emi_lump = None
    if "in" in rules or "out" in rules:
        tot = _turnover(d, orig_col, dest_col, flow_col, [])
        if "in" in rules:
            imm_lump = tot.loc[tot["in_mig"] < threshold, "region"]
        if "out" in rules:
            emi_lump = tot.loc[tot["out_mig"] < threshold, "region"]

    # in-totals relabel the origin field and out-totals the destination field
    if imm_lump is not None and len(imm_lump):
        out[orig_col] = out[orig_col].mask(out[orig_col].isin(imm_lump), other_level)
    if emi_lump is not None and len(emi_lump):
        out[dest_col] = out[dest_col].mask(out[dest_col].isin(emi_lump), other_level)

    if "flow" in rules:
        small = out[flow_col] < threshold
        out.loc[small, orig_col] = other_level
        out.loc[small, dest_col] = other_level
    return out


def _levels(s: pd.Series, other_level: str) -> list:
    # sorted, as a cross-tabulation of the labels would order them
    return sorted(set(s) | {other_level})


def _complete(x, orig_levels, dest_levels, fill, orig_col, dest_col, flow_col, group_cols):
    """
    Expand each group to every origin x destination combination.
    """
    full = pd.MultiIndex.from_product([orig_levels, dest_levels], names=[orig_col, dest_col])

    def _fill_one(sub):
        return (
            sub.set_index([orig_col, dest_col])[flow_col]
               .reindex(full, fill_value=fill)
               .reset_index()
        )

    if not group_cols:
        return _fill_one(x)

    parts = []
    for key, sub in x.groupby(group_cols, sort=True, dropna=False):
        key = key if isinstance(key, tuple) else (key,)
        part = _fill_one(sub)
        for i, (col, val) in enumerate(zip(group_cols, key)):
            part.insert(i, col, [val] * len(part))
        parts.append(part)
    if not parts:
        return pd.DataFrame(columns=group_cols + [orig_col, dest_col, flow_col])
    return pd.concat(parts, ignore_index=True)


def sum_lump(
    m,
    threshold=1,
    lump="flow",
    other_level: str = "other",
    complete: bool = False,
    fill=0,
    return_matrix: bool | None = None,
    orig_col: str = "orig",
    dest_col: str = "dest",
    flow_col: str = "flow",
    group_cols=None,
):
    """
    Lump together regions or flows below a threshold into `other_level`.

    Parameters
    ----------
    m : np.ndarray, pd.DataFrame, DataFrameGroupBy, list[dict] or Mapping
        Origin-destination flows. A 2-D array or an all-numeric DataFrame
        (index = origins, columns = destinations) is read as a matrix; a
        DataFrame with `orig_col`, `dest_col`, `flow_col` as records; a
        mapping {key: matrix} as one matrix per group (key in column 'group').
    threshold : float
        Values strictly below it are lumped.
    lump : str or list[str]
        Where to apply the threshold: 'flow'/'bilat' (single flows),
        'in'/'imm' (in-migration totals), 'out'/'emi' (out-migration totals).
        Strings like "in;out" are split.
    other_level : str
        Label given to lumped origins/destinations. Default "other".
    complete : bool
        Fill in every origin x destination combination (original labels plus
        `other_level`, in sorted order), using `fill` for combinations without flows.
    fill : float
        Value for combinations added by `complete`.
    return_matrix : bool | None
        None returns a matrix when `complete` is set and the input was a
        matrix, records otherwise. True insists on a matrix; False never
        returns one.
    orig_col, dest_col, flow_col : str
        Column names for record inputs (and for record outputs).
    group_cols : list[str], optional
        Grouping keys for record inputs; taken from the grouper when `m`
        is a DataFrameGroupBy.

    Returns
    -------
    pd.DataFrame or dict[Any, pd.DataFrame]
        Records (group_cols..., orig_col, dest_col, flow_col), or the
        origin x destination matrix (a dict of matrices for mapping inputs).

    Raises
    ------
    InvalidArgument
        Unrecognised lump tokens or malformed flow tables.
    DenseConversionUnsupported
        return_matrix=True without `complete` or without a matrix input.

    Example
    -------
    >>> dn = list("ABCD")
    >>> m = pd.DataFrame([[0, 100, 30, 10], [50, 0, 50, 5],
    ...                   [10, 40, 0, 40], [20, 25, 20, 0]], index=dn, columns=dn)
    >>> sum_lump(m, threshold=100, lump=["in", "out"])   # doctest: +SKIP
    """
    rules = _parse_lump(lump)
    threshold = _parse_threshold(threshold)
    d, dense, group_cols = _as_records(m, orig_col, dest_col, flow_col, group_cols)

    if return_matrix:
        if not complete:
            raise DenseConversionUnsupported("return_matrix=True requires complete=True.")
        if not dense:
            raise DenseConversionUnsupported(
                "return_matrix=True is only possible when the input is a matrix."
            )
    as_matrix = bool(complete and dense and return_matrix is not False)

    other_level = str(other_level)
    if d[orig_col].eq(other_level).any() or d[dest_col].eq(other_level).any():
        logging.warning(
            f"[lump] '{other_level}' is already a region label; lumped flows will be added to it."
        )

    if group_cols:
        parts = [
            _relabel_group(sub, threshold, rules, other_level, orig_col, dest_col, flow_col)
            for _, sub in d.groupby(group_cols, sort=False, dropna=False)
        ]
        relabelled = pd.concat(parts) if parts else d
    else:
        relabelled = _relabel_group(d, threshold, rules, other_level, orig_col, dest_col, flow_col)

    x = (
        relabelled.groupby(group_cols + [orig_col, dest_col], as_index=False, sort=True, dropna=False)
                  [flow_col].sum()
    )

    if complete:
        orig_levels = _levels(d[orig_col], other_level)
        dest_levels = _levels(d[dest_col], other_level)
        x = _complete(x, orig_levels, dest_levels, fill, orig_col, dest_col, flow_col, group_cols)

        if as_matrix:
            if not group_cols:
                return records_to_matrix(
                    x, orig_col, dest_col, flow_col, orig_levels, dest_levels, fill
                )
            return {
                key: records_to_matrix(
                    sub.drop(columns=DENSE_GROUP_COL),
                    orig_col, dest_col, flow_col, orig_levels, dest_levels, fill,
                )
                for key, sub in x.groupby(DENSE_GROUP_COL, sort=False)
            }

    return x.reset_index(drop=True)
