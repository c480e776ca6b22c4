from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.figure import Figure

from .vpm3d import ParticleField


@dataclass(slots=True)
class SnapshotConfig:
    color_by: Literal["gamma", "sigma", "speed"] = "gamma"
    show_gamma: bool = True  # quiver of Γ directions
    quiver_length: float | None = None  # None -> 0.5 * mean σ
    figsize: tuple[float, float] = (8.0, 6.0)
    cmap: str = "viridis"


def _color_values(pfield: ParticleField, mode: str) -> tuple[np.ndarray, str]:
    if mode == "gamma":
        return np.linalg.norm(pfield.gamma, axis=1), "|Γ|"
    if mode == "sigma":
        return pfield.sigma.copy(), "σ [m]"
    if mode == "speed":
        return np.linalg.norm(pfield.U, axis=1), "|U| [m/s]"
    raise ValueError("color_by must be one of {'gamma','sigma','speed'}.")


def plot_snapshot(
    pfield: ParticleField,
    *,
    config: SnapshotConfig | None = None,
    show: bool = True,
) -> Figure:
    """3D scatter of the particles, sized by σ, with optional Γ quivers. Returns the Figure."""
    cfg = config or SnapshotConfig()
    values, label = _color_values(pfield, cfg.color_by)

    fig = plt.figure(figsize=cfg.figsize)
    ax = fig.add_subplot(projection="3d")
    x = pfield.x
    s = 40.0 * (pfield.sigma / (pfield.sigma.max(initial=0.0) + 1e-15)) + 5.0
    sc = ax.scatter(x[:, 0], x[:, 1], x[:, 2], s=s, c=values, cmap=cfg.cmap,
                    edgecolors="k", linewidths=0.3, alpha=0.85)
    fig.colorbar(sc, ax=ax, fraction=0.046, pad=0.04).set_label(label)

    if cfg.show_gamma and pfield.n > 0:
        g = pfield.gamma
        nrm = np.linalg.norm(g, axis=1)
        d = g / np.where(nrm > 0.0, nrm, 1.0)[:, None]
        length = cfg.quiver_length if cfg.quiver_length is not None else 0.5 * float(pfield.sigma.mean())
        ax.quiver(x[:, 0], x[:, 1], x[:, 2], d[:, 0], d[:, 1], d[:, 2],
                  length=length, color="tab:red", linewidth=0.8)

    ax.set_title(f"Vortex particles, t = {pfield.t:.3f} s, n = {pfield.n}")
    ax.set_xlabel("x [m]")
    ax.set_ylabel("y [m]")
    ax.set_zlabel("z [m]")
    if show:
        plt.show()
    return fig
