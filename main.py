"""
Air-Quality Spatial Interpolation System: Streamlit Interface.

Run with:  streamlit run main.py
"""

import sys
import os
import tempfile

# Ensure the project root is on the Python path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import streamlit as st
import numpy as np

from data.interfaces import FileSampleProvider, MockSampleProvider
from data.mock_data import get_region_boundary
from data.state_io import serialize_pipeline_result
from models.errors import InterpolationError
from models.sample import Sample
from optimization.loocv import default_exponent_candidates
from optimization.pipeline import InterpolationPipeline, PollutantConfig
from validation.metrics import residual_summary
from visualization.plots import (
    create_exponent_sweep_figure,
    create_loocv_scatter,
    create_surface_figure,
    create_variogram_figure,
)
from config import (
    DEFAULT_CELL_SIZE,
    DEFAULT_N_BINS,
    DEFAULT_VARIOGRAM_FAMILIES,
    MOCK_STATION_COUNT,
    POLLUTANT_DEFAULTS,
    VARIOGRAM_FAMILIES,
)

# ── Page Config ──────────────────────────────────────────────────────────────

st.set_page_config(
    page_title="Air-Quality Interpolation",
    page_icon="🌫️",
    layout="wide",
)

st.title("Air-Quality Spatial Interpolation")
st.markdown(
    "Interpolates monitoring-station readings onto a regular grid with "
    "Inverse Distance Weighting or Ordinary Kriging, tuned and validated "
    "by leave-one-out cross-validation."
)

# ── Sidebar Controls ─────────────────────────────────────────────────────────

st.sidebar.header("Data")

data_source = st.sidebar.radio("Sample Source", ["Synthetic network", "Upload CSV"])

samples_by_pollutant = {}
region = None
if data_source == "Synthetic network":
    n_stations = st.sidebar.slider(
        "Stations", min_value=20, max_value=300, value=MOCK_STATION_COUNT, step=10,
    )
    seed = int(st.sidebar.number_input("Seed", value=20240601, step=1))
    provider = MockSampleProvider(n_stations=n_stations, seed=seed)
    samples_by_pollutant = provider.get_all_samples()
    region = get_region_boundary()
else:
    uploaded = st.sidebar.file_uploader("CSV with columns pollutant,x,y,value", type="csv")
    if uploaded is not None:
        with tempfile.NamedTemporaryFile("wb", suffix=".csv", delete=False) as tmp:
            tmp.write(uploaded.getvalue())
            tmp_path = tmp.name
        try:
            samples_by_pollutant = FileSampleProvider(tmp_path).get_all_samples()
        except ValueError as exc:
            st.error(f"Could not read CSV: {exc}")
        finally:
            os.unlink(tmp_path)

if not samples_by_pollutant:
    st.info("Choose a sample source in the sidebar to begin.")
    st.stop()

pollutant = st.sidebar.selectbox("Pollutant", list(samples_by_pollutant))

st.sidebar.header("Model")

default_log = POLLUTANT_DEFAULTS.get(pollutant, {}).get("log_transform", False)
log_transform = st.sidebar.checkbox("Log-transform values", value=default_log)
method = st.sidebar.radio("Gridded Method", ["kriging", "idw"], horizontal=True)
families = st.sidebar.multiselect(
    "Candidate Variogram Families",
    list(VARIOGRAM_FAMILIES),
    default=["Spherical", "Exponential", "Gaussian"],
)
n_bins = st.sidebar.slider("Lag Bins", min_value=5, max_value=30, value=DEFAULT_N_BINS)
cell_size = st.sidebar.select_slider(
    "Grid Cell Size (deg)",
    options=[0.05, 0.1, 0.2, 0.25, 0.5],
    value=DEFAULT_CELL_SIZE,
)
rmse_threshold = st.sidebar.number_input(
    "Kriging RMSE Threshold (0 = none)", min_value=0.0, value=0.0, step=0.1,
)

# ── Pipeline Run ─────────────────────────────────────────────────────────────


@st.cache_data(max_entries=8)
def cached_pipeline_run(
    samples_key: tuple,
    pollutant: str,
    log_transform: bool,
    method: str,
    families: tuple,
    n_bins: int,
    cell_size: float,
    rmse_threshold: float,
    region_key: tuple,
    refit_family: str,
):
    """
    Cached full pipeline run.

    Accepts hashable keys (tuples) instead of Sample lists so Streamlit can
    hash the arguments for its cache.
    """
    samples = [Sample(x=x, y=y, value=v) for x, y, v in samples_key]
    config = PollutantConfig(
        name=pollutant,
        log_transform=log_transform,
        exponent_candidates=default_exponent_candidates(),
        variogram_families=families or DEFAULT_VARIOGRAM_FAMILIES,
        n_bins=n_bins,
        cell_size=cell_size,
        rmse_threshold=rmse_threshold or None,
        method=method,
    )
    pipeline = InterpolationPipeline(config)
    region = list(region_key) if region_key else None
    if not refit_family:
        return pipeline.run(samples, region=region, allow_bounding_box=True)

    pipeline.load(samples)
    pipeline.select_exponent()
    pipeline.fit_variogram()
    pipeline.refit_variogram(refit_family)
    pipeline.validate()
    pipeline.restrict_grid(region=region, allow_bounding_box=True)
    pipeline.predict()
    return pipeline.result()


samples = samples_by_pollutant[pollutant]
samples_key = tuple((s.x, s.y, s.value) for s in samples)
region_key = tuple(region) if region else ()

refit_family = ""
if method == "kriging":
    refit_family = st.sidebar.selectbox(
        "Override Variogram Family", ["(automatic: min SSE)"] + list(VARIOGRAM_FAMILIES),
    )
    if refit_family.startswith("("):
        refit_family = ""

try:
    with st.spinner(f"Running {method} pipeline for {pollutant}..."):
        result = cached_pipeline_run(
            samples_key, pollutant, log_transform, method, tuple(families),
            n_bins, float(cell_size), float(rmse_threshold), region_key, refit_family,
        )
except InterpolationError as exc:
    st.error(f"{type(exc).__name__}: {exc}")
    st.stop()

# ── Summary Metrics Banner ───────────────────────────────────────────────────

m1, m2, m3, m4, m5 = st.columns(5)
m1.metric("Stations", f"{result.n_samples}")
m2.metric("IDW Exponent", f"{result.exponent_sweep.best_exponent:g}")
m3.metric("IDW LOOCV RMSE", f"{result.idw_rmse:.4g}")
if result.validation is not None:
    m4.metric("Variogram", result.model.family)
    m5.metric(
        "Kriging LOOCV RMSE",
        f"{result.kriging_rmse:.4g}",
        delta=None if result.rmse_acceptable else "above threshold",
        delta_color="inverse",
    )
else:
    m4.metric("Variogram", "n/a")
    m5.metric("Kriging LOOCV RMSE", "n/a")

if log_transform:
    st.caption(
        "Values are modelled on the log scale. Predictions are exponentiated; "
        "kriging variance remains on the log scale."
    )

# ── Visualization ────────────────────────────────────────────────────────────

units = POLLUTANT_DEFAULTS.get(pollutant, {}).get("units", "")
view_options = ["Surface", "Variance", "Variogram", "Cross-Validation", "Exponent Sweep"]
active_view = st.radio("View", view_options, horizontal=True, label_visibility="collapsed")

if active_view == "Surface":
    st.plotly_chart(
        create_surface_figure(
            result.grid, result.predictions, samples, result.hull,
            units=units, title=f"{pollutant} ({method})",
        ),
        use_container_width=True,
    )

elif active_view == "Variance":
    st.plotly_chart(
        create_surface_figure(
            result.grid, result.predictions, samples, result.hull,
            show_variance=True, title=f"{pollutant} kriging variance",
        ),
        use_container_width=True,
    )

elif active_view == "Variogram":
    if result.variogram is None:
        st.info("Variogram is only fitted for kriging runs.")
    else:
        st.plotly_chart(
            create_variogram_figure(
                result.variogram.empirical,
                result.variogram.diagnostics,
                selected_family=result.model.family,
            ),
            use_container_width=True,
        )
        st.table([
            {
                "Family": d.family,
                "SSE": f"{d.sse:.4g}" if d.succeeded else "failed",
                "Nugget": f"{d.model.nugget:.4g}" if d.succeeded else "",
                "Partial sill": f"{d.model.partial_sill:.4g}" if d.succeeded else "",
                "Range": f"{d.model.range:.4g}" if d.succeeded else "",
            }
            for d in result.variogram.diagnostics
        ])

elif active_view == "Cross-Validation":
    cv = result.validation or result.exponent_sweep.best_result
    st.plotly_chart(create_loocv_scatter(cv), use_container_width=True)
    summary = residual_summary(cv.residuals)
    st.json({k: (round(v, 6) if isinstance(v, float) and np.isfinite(v) else v)
             for k, v in summary.items()})

else:
    st.plotly_chart(create_exponent_sweep_figure(result.exponent_sweep), use_container_width=True)

# ── Export ───────────────────────────────────────────────────────────────────

st.download_button(
    "Download results (.npz)",
    data=serialize_pipeline_result(result),
    file_name=f"{pollutant}_{method}.npz",
    mime="application/octet-stream",
)
