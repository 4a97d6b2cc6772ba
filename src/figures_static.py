import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns


def plot_rc9_schedule(schedule: pd.DataFrame, fig_path=None, ax=None, label=None):
    """
    Line plot of a migration schedule with columns 'age' and 'mx'
    (as returned by rogers_castro.rc9_frame).
    """
    missing = [c for c in ("age", "mx") if c not in schedule.columns]
    if missing:
        raise KeyError(f"Missing columns in schedule: {missing}")

    if ax is None:
        fig, ax = plt.subplots(figsize=(7, 4))
    else:
        fig = ax.figure

    ax.plot(schedule["age"], schedule["mx"], color="#345995", linewidth=2, label=label)
    ax.set_xlabel("Age")
    ax.set_ylabel("Migration rate")
    ax.grid(which="major", linestyle="--", alpha=0.2)
    if label is not None:
        ax.legend(frameon=True, edgecolor="k")
    sns.despine(ax=ax)
    fig.tight_layout()

    if fig_path is not None:
        fig.savefig(fig_path)
    return fig


def plot_flow_matrix(mat: pd.DataFrame, fig_path=None, ax=None, fmt=".0f", cmap="Blues"):
    """
    Annotated heatmap of an origin x destination matrix (e.g. the dense
    result of flow_lumping.sum_lump with complete=True).
    """
    if mat.empty:
        raise ValueError("Flow matrix is empty.")

    if ax is None:
        n_r, n_c = mat.shape
        fig, ax = plt.subplots(figsize=(max(4, 0.8 * n_c + 2), max(3, 0.6 * n_r + 1.5)))
    else:
        fig = ax.figure

    sns.heatmap(
        mat.astype(float),
        annot=True,
        fmt=fmt,
        cmap=cmap,
        linewidths=0.5,
        linecolor="w",
        cbar_kws={"label": "Flow"},
        ax=ax,
    )
    ax.set_xlabel(mat.columns.name or "Destination")
    ax.set_ylabel(mat.index.name or "Origin")
    ax.tick_params(axis="y", rotation=0)
    fig.tight_layout()

    if fig_path is not None:
        fig.savefig(fig_path)
    return fig
