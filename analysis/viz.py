"""
Visualization functions for looking-accuracy timecourses.
"""
import pandas as pd
import matplotlib.pyplot as plt
from matplotlib.figure import Figure
from typing import Dict, Optional, Tuple
import seaborn as sns
from pathlib import Path

CONDITION_COLORS = {
    "Correct": "#1f77b4",
    "Mispronounced": "#d62728",
}


def plot_accuracy_timecourse(summary: pd.DataFrame, fig: Optional[Figure] = None,
                             window: Optional[Tuple[float, float]] = None,
                             t_range: Optional[Tuple[float, float]] = None,
                             colors: Optional[Dict[str, str]] = None) -> Figure:
    """
    Plot group mean accuracy over time with confidence ribbons.

    Parameters:
    -----------
    summary : pd.DataFrame
        Two-stage summary with 'condition', 't_norm', 'mean_accuracy' and
        'ci_half_width' columns
    fig : Optional[Figure], optional
        Matplotlib figure to plot on, by default None
    window : Optional[Tuple[float, float]], optional
        Analysis window to shade, by default None
    t_range : Optional[Tuple[float, float]], optional
        Limits of the time axis in ms, by default the full range
    colors : Optional[Dict[str, str]], optional
        Line colour per condition, by default CONDITION_COLORS

    Returns:
    --------
    Figure
        Matplotlib figure with the plot
    """
    if fig is None:
        fig = plt.figure(figsize=(10, 6))
    colors = colors or CONDITION_COLORS

    ax = fig.add_subplot(111)

    if summary.empty:
        ax.text(0.5, 0.5, 'No data', ha='center', va='center')
        ax.axis('off')
        return fig

    data = summary
    if t_range is not None:
        data = data[data['t_norm'].between(*t_range)]

    if window is not None:
        ax.axvspan(window[0], window[1], color='gray', alpha=0.15, label='Analysis window')

    for condition, group in data.groupby('condition', sort=True):
        group = group.sort_values('t_norm')
        color = colors.get(condition)
        line, = ax.plot(group['t_norm'], group['mean_accuracy'], label=condition, color=color)
        # Low-support points have a NaN half-width and therefore no ribbon
        lower = group['mean_accuracy'] - group['ci_half_width']
        upper = group['mean_accuracy'] + group['ci_half_width']
        ax.fill_between(group['t_norm'], lower, upper, color=line.get_color(), alpha=0.25)

    ax.axhline(0.5, color='black', linestyle='--', linewidth=1)
    ax.axvline(0, color='black', linestyle=':', linewidth=1)
    ax.set_ylim(0, 1)
    ax.set_xlabel('Time from word onset (ms)')
    ax.set_ylabel('Proportion target looking')
    ax.set_title('Looking accuracy over time')
    ax.legend()

    return fig


def plot_window_summary(subject_window: pd.DataFrame) -> Figure:
    """Bar plot of window accuracy per condition with individual subjects overlaid.

    Parameters
    ----------
    subject_window : pd.DataFrame
        Per-subject window accuracy with ``condition`` and ``accuracy`` columns.

    Returns
    -------
    Figure
        Matplotlib figure with the bar plot.
    """
    fig = plt.figure(figsize=(6, 6))
    ax = fig.add_subplot(111)

    data = subject_window.dropna(subset=['accuracy']) if not subject_window.empty else subject_window
    if data.empty:
        ax.text(0.5, 0.5, 'No data', ha='center', va='center')
        ax.axis('off')
        return fig

    order = sorted(data['condition'].unique())
    sns.barplot(data=data, x='condition', y='accuracy', order=order,
                errorbar=('ci', 95), color='lightgray', ax=ax)
    sns.stripplot(data=data, x='condition', y='accuracy', order=order,
                  color='black', alpha=0.6, ax=ax)

    ax.axhline(0.5, color='black', linestyle='--', linewidth=1)
    ax.set_ylim(0, 1)
    ax.set_xlabel('Condition')
    ax.set_ylabel('Window accuracy')
    ax.set_title('Window accuracy by condition')
    fig.tight_layout()

    return fig


def save_all_visualizations(summary: pd.DataFrame, subject_window: pd.DataFrame,
                            output_dir: str,
                            window: Optional[Tuple[float, float]] = None,
                            t_range: Optional[Tuple[float, float]] = None) -> None:
    """
    Generate and save all figures for one analysis.

    Parameters:
    -----------
    summary : pd.DataFrame
        Two-stage timecourse summary
    subject_window : pd.DataFrame
        Per-subject window accuracy
    output_dir : str
        Directory to save figures
    window : Optional[Tuple[float, float]], optional
        Analysis window to shade, by default None
    t_range : Optional[Tuple[float, float]], optional
        Time axis limits, by default None
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    fig = plot_accuracy_timecourse(summary, window=window, t_range=t_range)
    fig.savefig(output_path / "accuracy_timecourse.png", dpi=300, bbox_inches='tight')
    plt.close(fig)

    fig = plot_window_summary(subject_window)
    fig.savefig(output_path / "window_accuracy.png", dpi=300, bbox_inches='tight')
    plt.close(fig)
