"""
BAC-over-time graph. Produces an image file or returns data for web/watch.
"""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from bac_engine.calculations import bac_curve
from bac_engine.config import DEFAULT_CONFIG, EngineConfig
from bac_engine.models import BACLevel, DrinkRecord, Profile

LEVEL_COLORS = {
    BACLevel.SAFE: "#2563eb",
    BACLevel.CAUTION: "#f59e0b",
    BACLevel.WARNING: "#dc2626",
    BACLevel.DANGER: "#7f1d1d",
}


def level_thresholds(config: EngineConfig = DEFAULT_CONFIG) -> List[Tuple[BACLevel, float]]:
    """Lower bound of every level above SAFE, lowest first."""
    return [
        (BACLevel.CAUTION, config.caution_level),
        (BACLevel.WARNING, config.legal_level),
        (BACLevel.DANGER, config.high_level),
    ]


def curve_data(
    profile: Profile,
    drinks: Iterable[DrinkRecord],
    start: datetime,
    step: timedelta = timedelta(minutes=15),
    max_hours: float = 12.0,
    config: EngineConfig = DEFAULT_CONFIG,
) -> List[Tuple[str, float]]:
    """(iso_time, bac_percent) for use in any frontend."""
    end = start + timedelta(hours=max_hours)
    points = bac_curve(profile, drinks, start, end, step=step, config=config)
    return [(t.isoformat(), bac) for t, bac in points]


def save_bac_graph(
    profile: Profile,
    drinks: Iterable[DrinkRecord],
    start: datetime,
    output_path: str = "bac_graph.png",
    step: timedelta = timedelta(minutes=15),
    max_hours: Optional[float] = 12.0,
    title: str = "BAC over time",
    config: EngineConfig = DEFAULT_CONFIG,
) -> str:
    """
    Plot BAC curve with matplotlib and save to file.
    Returns path to saved file. Requires: pip install matplotlib
    """
    try:
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
    except ImportError:
        raise ImportError("matplotlib is required for save_bac_graph. pip install matplotlib")

    end = start + timedelta(hours=max_hours) if max_hours is not None else None
    points = bac_curve(profile, drinks, start, end, step=step, config=config)
    if not points:
        hours, bacs = [0.0], [0.0]
    else:
        hours = [(t - start).total_seconds() / 3600.0 for t, _ in points]
        bacs = [bac for _, bac in points]

    fig, ax = plt.subplots(figsize=(10, 5))
    ax.plot(hours, bacs, color=LEVEL_COLORS[BACLevel.SAFE], linewidth=2, label="Estimated BAC")
    for level, threshold in level_thresholds(config):
        ax.axhline(threshold, color=LEVEL_COLORS[level], linestyle="--", linewidth=1,
                   label=f"{level.value.title()} ({threshold:.2f}%)")
    peak = max(bacs)
    if peak > 0:
        peak_hour = hours[bacs.index(peak)]
        ax.annotate(f"peak {peak:.3f}%", xy=(peak_hour, peak), xytext=(6, 6), textcoords="offset points")
    ax.set_xlabel(f"Hours after {start:%H:%M}")
    ax.set_ylabel("BAC (%)")
    ax.set_title(title)
    ax.legend(loc="upper right")
    ax.set_ylim(0, max(peak, config.high_level) * 1.1)
    ax.grid(True, alpha=0.3)
    fig.tight_layout()
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=150)
    plt.close(fig)
    return output_path
