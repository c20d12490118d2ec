"""
Plotly figure builders for the Streamlit dashboard and experiment reports.

Diagnostics only: every decision (exponent, variogram family) is made by
the pipeline.  These figures let an operator inspect those decisions.
"""

import numpy as np
import plotly.graph_objects as go
from plotly.subplots import make_subplots
from typing import List, Optional, Sequence

from models.domain import ConvexHull, Grid
from models.sample import PredictionResult, Sample
from models.variogram import EmpiricalVariogramBin, bins_to_arrays
from models.variogram_fit import FamilyFit
from optimization.loocv import CrossValidationResult, ExponentSweep

FAMILY_COLORS = {
    "Nugget": "gray",
    "Spherical": "deepskyblue",
    "Exponential": "orange",
    "Gaussian": "lime",
    "Wave": "violet",
    "HoleEffect": "gold",
    "Periodic": "tomato",
}


def _empty_figure(message: str) -> go.Figure:
    fig = go.Figure()
    fig.add_annotation(text=message, showarrow=False)
    fig.update_layout(template="plotly_dark")
    return fig


# ── Variogram ───────────────────────────────────────────────────────────────

def create_variogram_figure(
    empirical: Sequence[EmpiricalVariogramBin],
    diagnostics: Sequence[FamilyFit] = (),
    selected_family: Optional[str] = None,
    title: str = "Empirical Variogram",
) -> go.Figure:
    """
    Empirical semivariance per lag bin with every fitted family overlaid.

    Marker size scales with the bin's pair count.  The selected family is
    drawn solid, the others dashed.
    """
    if not empirical:
        return _empty_figure("No variogram bins available")

    lags, gammas, counts = bins_to_arrays(empirical)
    fig = go.Figure()

    sizes = 6 + 14 * np.sqrt(counts / counts.max())
    fig.add_trace(
        go.Scatter(
            x=lags,
            y=gammas,
            mode="markers",
            marker=dict(size=sizes, color="white", line=dict(width=1, color="black")),
            customdata=counts,
            name="Empirical",
            hovertemplate="h: %{x:.3g}<br>gamma: %{y:.4g}<br>pairs: %{customdata:.0f}<extra></extra>",
        )
    )

    h = np.linspace(0.0, float(lags.max()) * 1.05, 200)
    for fit in diagnostics:
        if not fit.succeeded:
            continue
        selected = fit.family == selected_family
        fig.add_trace(
            go.Scatter(
                x=h,
                y=fit.model.semivariance(h),
                mode="lines",
                line=dict(
                    color=FAMILY_COLORS.get(fit.family, "white"),
                    width=3 if selected else 1.5,
                    dash="solid" if selected else "dash",
                ),
                name=f"{fit.family} (SSE {fit.sse:.3g})",
                hovertemplate=f"{fit.family}<br>h: %{{x:.3g}}<br>gamma: %{{y:.4g}}<extra></extra>",
            )
        )

    fig.update_layout(
        title=title,
        xaxis_title="Lag distance h",
        yaxis_title="Semivariance",
        template="plotly_dark",
        height=450,
    )
    return fig


# ── Cross-validation ────────────────────────────────────────────────────────

def create_loocv_scatter(
    result: CrossValidationResult,
    title: str = "LOOCV: Observed vs Predicted",
) -> go.Figure:
    """Observed against leave-one-out predicted values with a 1:1 line."""
    if not result.residuals:
        return _empty_figure("No residuals available")

    obs = result.observed
    pred = result.predicted
    lo = float(min(obs.min(), pred.min()))
    hi = float(max(obs.max(), pred.max()))

    fig = go.Figure()
    fig.add_trace(
        go.Scatter(
            x=[lo, hi],
            y=[lo, hi],
            mode="lines",
            line=dict(color="gray", dash="dash"),
            name="1:1",
            hoverinfo="skip",
        )
    )
    fig.add_trace(
        go.Scatter(
            x=obs,
            y=pred,
            mode="markers",
            marker=dict(size=8, color=result.errors, colorscale="RdBu",
                        cmid=0.0, colorbar=dict(title="Residual")),
            name="Stations",
            hovertemplate="Observed: %{x:.4g}<br>Predicted: %{y:.4g}<extra></extra>",
        )
    )
    fig.update_layout(
        title=f"{title} (RMSE {result.rmse:.4g})",
        xaxis_title="Observed",
        yaxis_title="Predicted",
        template="plotly_dark",
        height=450,
    )
    return fig


def create_exponent_sweep_figure(sweep: ExponentSweep) -> go.Figure:
    """LOOCV RMSE against IDW exponent, best candidate starred."""
    if not sweep.scores:
        return _empty_figure("No exponent scores available")

    exps = [p for p, _ in sweep.scores]
    rmses = [r for _, r in sweep.scores]

    fig = go.Figure()
    fig.add_trace(
        go.Scatter(
            x=exps,
            y=rmses,
            mode="lines+markers",
            line=dict(color="deepskyblue", width=2),
            name="LOOCV RMSE",
            hovertemplate="p = %{x:.2f}<br>RMSE: %{y:.4g}<extra></extra>",
        )
    )
    fig.add_trace(
        go.Scatter(
            x=[sweep.best_exponent],
            y=[sweep.best_rmse],
            mode="markers",
            marker=dict(size=16, color="yellow", symbol="star",
                        line=dict(width=2, color="black")),
            name=f"Best p = {sweep.best_exponent:g}",
        )
    )
    fig.update_layout(
        title="IDW Exponent Selection",
        xaxis_title="Exponent p",
        yaxis_title="LOOCV RMSE",
        template="plotly_dark",
        height=350,
    )
    return fig


# ── Prediction surface ──────────────────────────────────────────────────────

def create_surface_figure(
    grid: Grid,
    predictions: List[PredictionResult],
    samples: Sequence[Sample] = (),
    hull: Optional[ConvexHull] = None,
    show_variance: bool = False,
    units: str = "",
    title: str = "Interpolated Surface",
) -> go.Figure:
    """
    Prediction (or kriging variance) heatmap over the restricted grid,
    with stations and the hull outline.
    """
    if not predictions:
        return _empty_figure("No predictions available")

    if show_variance:
        if predictions[0].predicted_variance is None:
            return _empty_figure("Variance is only available for kriging")
        values = np.array([p.predicted_variance for p in predictions])
        label = "Variance"
        colorscale = "Viridis"
    else:
        values = np.array([p.predicted_value for p in predictions])
        label = f"Value ({units})" if units else "Value"
        colorscale = "YlOrRd"

    fig = make_subplots(rows=1, cols=1)
    fig.add_trace(
        go.Heatmap(
            x=grid.x_coords,
            y=grid.y_coords,
            z=grid.to_raster(values),
            colorscale=colorscale,
            colorbar=dict(title=label),
            name=label,
            hovertemplate="x: %{x:.3f}<br>y: %{y:.3f}<br>%{z:.4g}<extra></extra>",
        ),
        row=1, col=1,
    )

    if hull is not None:
        ring = hull.closed_ring()
        fig.add_trace(
            go.Scatter(
                x=ring[:, 0],
                y=ring[:, 1],
                mode="lines",
                line=dict(color="cyan", width=2, dash="dash"),
                name="Convex Hull",
                hoverinfo="skip",
            ),
            row=1, col=1,
        )

    if samples:
        fig.add_trace(
            go.Scatter(
                x=[s.x for s in samples],
                y=[s.y for s in samples],
                mode="markers",
                marker=dict(size=7, color="lime", symbol="diamond",
                            line=dict(width=1, color="black")),
                text=[f"{s.value:.4g}" for s in samples],
                name="Stations",
                hovertemplate="%{text}<br>(%{x:.3f}, %{y:.3f})<extra></extra>",
            ),
            row=1, col=1,
        )

    fig.update_layout(
        title=title,
        height=600,
        template="plotly_dark",
        legend=dict(
            orientation="h",
            yanchor="bottom",
            y=-0.15,
            xanchor="center",
            x=0.5,
        ),
        margin=dict(l=60, r=60, t=60, b=80),
    )
    fig.update_xaxes(title_text="Longitude")
    fig.update_yaxes(title_text="Latitude", scaleanchor="x", scaleratio=1)
    return fig
