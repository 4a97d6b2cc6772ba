# src/data_loaders.py
import os
import yaml
import pyreadr
import pandas as pd
import numpy as np

from helpers import _find_col


INDIAN_SUB_COLUMNS = ["zone", "state", "sex", "in_migrants", "out_migrants", "net_migrants"]
INDIAN_SUB_ROWS = 164


def _get_base_dir():
    """
    Returns the directory of this script
    """
    return os.path.dirname(os.path.abspath(__file__))

def return_default_config():
    """
    Returns the default configuration dictionary
    """
    return {
        "paths": {
            "data_dir": "./data",
            "results_dir": "./results",
            "flows": "./data/flows.csv",
            "indian_sub": "./data/indian_sub.rda",
        },
        "diagnostics": {
            "print_summary": True,
        },
        "schedule": {
            "ages": {"start": 0, "stop": 100, "step": 1},
            "scaled": True,
            "params": None,  # None -> Rogers-Castro fundamental parameters
        },
        "lumping": {
            "enabled": True,
            "threshold": 1,
            "lump": ["flow"],
            "other_level": "other",
            "complete": False,
            "fill": 0,
            "return_matrix": None,
            "columns": {"orig": "orig", "dest": "dest", "flow": "flow"},
            "group_cols": [],
        },
        "figures": {"enabled": False},
        "filenames": {
            "schedule": "rc9_schedule.csv",
            "lumped": "flows_lumped.csv",
            "turnover": "turnover.csv",
            "schedule_fig": "rc9_schedule.pdf",
        },
    }

def _resolve(ROOT_DIR, p):
    """
    Resolve path p relative to ROOT_DIR if not absolute.
    """
    return os.path.abspath(os.path.join(ROOT_DIR, p))

def _deep_merge(dst, src):
    """
    Recursively merge src into dst
    """
    for k, v in src.items():
        if isinstance(v, dict) and isinstance(dst.get(k), dict):
            _deep_merge(dst[k], v)
        else:
            dst[k] = v

def _load_config(ROOT_DIR: str, path: str):
    """
    Load YAML config if present; otherwise use defaults for both config and paths.
    Returns (cfg, PATHS)
    """
    cfg = return_default_config()
    if os.path.exists(path):
        with open(path, "r", encoding="utf-8") as fh:
            user = yaml.safe_load(fh) or {}
        _deep_merge(cfg, user)
    else:
        print(f"[config] No config file at {path}; using built-in defaults.")

    PATHS = {
        "data_dir": _resolve(ROOT_DIR, cfg["paths"]["data_dir"]),
        "results_dir": _resolve(ROOT_DIR, cfg["paths"]["results_dir"]),
        "flows": _resolve(ROOT_DIR, cfg["paths"]["flows"]),
        "indian_sub": _resolve(ROOT_DIR, cfg["paths"]["indian_sub"]),
    }
    return cfg, PATHS

# ------------------------------- readers --------------------------------------

def read_rds_file(file_path: str, name: str | None = None) -> pd.DataFrame:
    """
    Reads an RDS (or RData) file and returns its contents as a pandas DataFrame.

    RDS files hold a single unnamed object; RData files are keyed by object
    name, in which case `name` (or the only object present) is returned.
    """
    try:
        result = pyreadr.read_r(file_path)
    except Exception as e:
        raise RuntimeError(f"Failed to read {file_path}: {e}")
    if name is not None:
        if name not in result:
            raise KeyError(f"Object {name!r} not found in {file_path}; found {list(result.keys())}")
        return result[name]
    if None in result:
        return result[None]
    if len(result) == 1:
        return next(iter(result.values()))
    raise KeyError(f"{file_path} holds several objects {list(result.keys())}; pass name=")

def load_flow_table(path: str, name: str | None = None) -> pd.DataFrame:
    """
    Load an origin-destination flow table from .csv, .parquet or .rds/.rda.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"File not found: {path}")
    ext = os.path.splitext(path)[1].lower()
    if ext == ".csv":
        return pd.read_csv(path)
    if ext == ".parquet":
        return pd.read_parquet(path)
    if ext in (".rds", ".rda", ".rdata"):
        return read_rds_file(path, name=name)
    raise ValueError(f"Unsupported flow table format: {ext!r}")

def _standardize_indian_sub(raw: pd.DataFrame) -> pd.DataFrame:
    """
    Rename liberally-detected headers to INDIAN_SUB_COLUMNS and coerce counts.
    """
    df = raw.copy()
    patterns = {
        "zone": ["zone"],
        "state": ["state"],
        "sex": ["sex"],
        "in_migrants": ["in", "migrant"],
        "out_migrants": ["out", "migrant"],
        "net_migrants": ["net"],
    }
    rename = {}
    for target, must in patterns.items():
        if target in df.columns:
            continue
        cand = _find_col(df.drop(columns=list(rename), errors="ignore"), must)
        if cand is None:
            raise KeyError(f"Could not find '{target}' column in indian_sub data.")
        rename[cand] = target
    df = df.rename(columns=rename)[INDIAN_SUB_COLUMNS]

    for c in ["zone", "state", "sex"]:
        df[c] = df[c].astype(str).str.strip()
    for c in ["in_migrants", "out_migrants", "net_migrants"]:
        df[c] = pd.to_numeric(df[c], errors="coerce")
    return df.reset_index(drop=True)

def load_indian_sub(path: str | None = None) -> pd.DataFrame:
    """
    Lifetime migration totals for states and zones of the Indian sub-continent,
    1901 to 1931, based on birthplace.

    Columns
    -------
    zone : zone of the state (in some cases the state and zone are the same entity)
    state : Indian state
    sex : migrant sex
    in_migrants, out_migrants, net_migrants : totals based on birthplace

    Source: Zachariah, K.C., A Historical Study of Internal Migration in the
    Indian Sub-continent 1901-1931.

    Parameters
    ----------
    path : str, optional
        .rda/.rds (as shipped with the R data package) or .csv file.
        Defaults to data/indian_sub.rda next to the repository root. The
        dataset is not distributed with this package; copy the .rda from the
        R data package (or a CSV export of it) there, or pass its path.

    Returns
    -------
    pd.DataFrame
        A fresh copy on every call; callers may modify it freely.
    """
    if path is None:
        path = _resolve(os.path.join(_get_base_dir(), ".."), "./data/indian_sub.rda")
    if not os.path.exists(path):
        raise FileNotFoundError(
            f"indian_sub dataset not found at {path}. It is not bundled; "
            "supply the .rda from the R data package or a CSV export."
        )
    is_rdata = os.path.splitext(path)[1].lower() in (".rda", ".rdata")
    raw = load_flow_table(path, name="indian_sub" if is_rdata else None)
    df = _standardize_indian_sub(raw)

    if len(df) != INDIAN_SUB_ROWS:
        print(f"[data] indian_sub has {len(df)} rows (expected {INDIAN_SUB_ROWS}).")
    bad = df[["in_migrants", "out_migrants"]].isna().any(axis=1)
    if bad.any():
        raise ValueError(f"Non-numeric migrant totals in {int(bad.sum())} indian_sub rows.")
    # Net totals left blank in the source are recomputed
    df["net_migrants"] = np.where(
        df["net_migrants"].isna(), df["in_migrants"] - df["out_migrants"], df["net_migrants"]
    )
    return df
