from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Any

import numpy as np

try:
    import plotly.graph_objects as go
    _PLOTLY = True
except Exception:  # pragma: no cover
    _PLOTLY = False

from .vpm3d import ParticleField


@dataclass(slots=True)
class PlotlySnapshotConfig:
    show_gamma: bool = True
    colorscale: str = "Viridis"
    norm: Literal["linear", "log"] = "linear"
    marker_size: float = 4.0
    cone_sizeref: float = 0.5
    cbar_label: str = "|Γ|"


def _apply_norm(values: np.ndarray, mode: Literal["linear", "log"]) -> tuple[np.ndarray, str]:
    if mode == "linear":
        return values, "linear"
    # log
    eps = max(1e-12, float(values.max(initial=0.0)) * 1e-6)
    return np.log10(values + eps), "log10"


def plot_snapshot_interactive(
    pfield: ParticleField,
    *,
    config: PlotlySnapshotConfig | None = None,
    save_html: str | None = None,
) -> Any:
    """Interactive 3D snapshot with Plotly (rotate/zoom, hover). Returns the Figure."""
    if not _PLOTLY:
        raise RuntimeError("plotly is not installed. `pip install plotly`")

    cfg = config or PlotlySnapshotConfig()
    x = pfield.x
    g = pfield.gamma
    strength, norm_name = _apply_norm(np.linalg.norm(g, axis=1), cfg.norm)

    fig = go.Figure(
        data=[
            go.Scatter3d(
                x=x[:, 0], y=x[:, 1], z=x[:, 2],
                mode="markers",
                marker=dict(
                    size=cfg.marker_size,
                    color=strength,
                    colorscale=cfg.colorscale,
                    colorbar=dict(title=f"{cfg.cbar_label} ({norm_name})"),
                    line=dict(width=0.5, color="black"),
                ),
                customdata=np.column_stack([pfield.sigma, np.linalg.norm(g, axis=1)]),
                hovertemplate="σ=%{customdata[0]:.4g}<br>|Γ|=%{customdata[1]:.4g}<extra></extra>",
                name="particles",
            )
        ]
    )

    if cfg.show_gamma and pfield.n > 0:
        fig.add_trace(go.Cone(
            x=x[:, 0], y=x[:, 1], z=x[:, 2],
            u=g[:, 0], v=g[:, 1], w=g[:, 2],
            sizemode="scaled", sizeref=cfg.cone_sizeref,
            showscale=False, anchor="tail", name="Γ",
        ))

    fig.update_layout(
        title=f"t = {pfield.t:.3f} s, n = {pfield.n}",
        scene=dict(xaxis_title="x [m]", yaxis_title="y [m]", zaxis_title="z [m]", aspectmode="data"),
        template="plotly_white",
        legend=dict(x=0.01, y=0.99),
    )

    if save_html:
        fig.write_html(save_html, include_plotlyjs="cdn")
    return fig
