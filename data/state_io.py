"""
Result serialization / deserialization for interpolation runs.

Saves and restores a pollutant run as a compressed NPZ archive: the
prediction raster and lattice axes as arrays, and the variogram model,
LOOCV residuals and metadata as JSON strings.
"""

import io
import json
import numpy as np
from typing import Any, Dict, List, Optional

from config import DEFAULT_CRS
from models.sample import Residual
from models.variogram import VariogramModel


def serialize_results(
    predictions: np.ndarray,
    x_coords: np.ndarray,
    y_coords: np.ndarray,
    variances: Optional[np.ndarray] = None,
    model: Optional[VariogramModel] = None,
    sse: Optional[float] = None,
    rmse: Optional[float] = None,
    residuals: Optional[List[Residual]] = None,
    metadata: Optional[dict] = None,
) -> bytes:
    """Serialize one run to a compressed NPZ archive.

    Args:
        predictions: 2D prediction raster (NaN outside the domain).
        x_coords: 1D lattice x axis.
        y_coords: 1D lattice y axis.
        variances: Optional 2D kriging variance raster.
        model: Optional fitted variogram model.
        sse: Optional variogram fit SSE.
        rmse: Optional LOOCV RMSE.
        residuals: Optional LOOCV residuals.
        metadata: Optional dict of extra metadata.

    Returns:
        Bytes of the compressed NPZ archive.
    """
    save_dict: Dict[str, Any] = {
        "predictions": predictions,
        "x_coords": x_coords,
        "y_coords": y_coords,
    }

    if variances is not None:
        save_dict["variances"] = variances

    if model is not None:
        save_dict["model_json"] = np.array(json.dumps(model.to_dict()))

    scores = {}
    if sse is not None:
        scores["sse"] = float(sse)
    if rmse is not None:
        scores["rmse"] = float(rmse)
    if scores:
        save_dict["scores_json"] = np.array(json.dumps(scores))

    # Encode residuals as JSON string stored in a numpy char array
    if residuals:
        res_dicts = [
            {
                "sample_index": r.sample_index,
                "observed_value": r.observed_value,
                "predicted_value": r.predicted_value,
            }
            for r in residuals
        ]
        save_dict["residuals_json"] = np.array(json.dumps(res_dicts))

    if metadata:
        save_dict["metadata_json"] = np.array(json.dumps(metadata, default=str))

    buf = io.BytesIO()
    np.savez_compressed(buf, **save_dict)
    buf.seek(0)
    return buf.read()


def deserialize_results(data: bytes) -> dict:
    """Deserialize a run from NPZ bytes.

    Args:
        data: Bytes of a compressed NPZ archive.

    Returns:
        Dict with keys:
            'predictions': 2D numpy array
            'x_coords': 1D numpy array
            'y_coords': 1D numpy array
            'variances': 2D numpy array or None
            'model': VariogramModel or None
            'sse': float or None
            'rmse': float or None
            'residuals': List[Residual] (may be empty)
            'metadata': dict (may be empty)
    """
    buf = io.BytesIO(data)
    npz = np.load(buf, allow_pickle=False)

    result: Dict[str, Any] = {
        "predictions": npz["predictions"],
        "x_coords": npz["x_coords"],
        "y_coords": npz["y_coords"],
        "variances": None,
        "model": None,
        "sse": None,
        "rmse": None,
        "residuals": [],
        "metadata": {},
    }

    if "variances" in npz:
        result["variances"] = npz["variances"]

    if "model_json" in npz:
        result["model"] = VariogramModel(**json.loads(str(npz["model_json"])))

    if "scores_json" in npz:
        scores = json.loads(str(npz["scores_json"]))
        result["sse"] = scores.get("sse")
        result["rmse"] = scores.get("rmse")

    if "residuals_json" in npz:
        res_dicts = json.loads(str(npz["residuals_json"]))
        result["residuals"] = [Residual(**rd) for rd in res_dicts]

    if "metadata_json" in npz:
        result["metadata"] = json.loads(str(npz["metadata_json"]))

    return result


def serialize_pipeline_result(result, metadata: Optional[dict] = None) -> bytes:
    """Serialize a PipelineResult (optimization/pipeline.py) that reached Predicted."""
    if result.grid is None:
        raise ValueError(f"Run for '{result.pollutant}' has no prediction grid")
    variances = None
    if result.predictions and result.predictions[0].predicted_variance is not None:
        variances = result.grid.to_raster(
            np.array([p.predicted_variance for p in result.predictions])
        )
    meta = {
        "pollutant": result.pollutant,
        "method": result.method,
        "log_transform": result.log_transform,
        "n_samples": result.n_samples,
        "cell_size": result.grid.cell_size,
        "crs": DEFAULT_CRS,
    }
    if result.exponent_sweep is not None:
        meta["idw_exponent"] = result.exponent_sweep.best_exponent
        meta["idw_rmse"] = result.exponent_sweep.best_rmse
    if result.rmse_acceptable is not None:
        meta["rmse_acceptable"] = result.rmse_acceptable
    meta.update(metadata or {})

    return serialize_results(
        predictions=result.prediction_raster(),
        x_coords=result.grid.x_coords,
        y_coords=result.grid.y_coords,
        variances=variances,
        model=result.model,
        sse=result.variogram.sse if result.variogram else None,
        rmse=result.kriging_rmse,
        residuals=result.validation.residuals if result.validation else None,
        metadata=meta,
    )
