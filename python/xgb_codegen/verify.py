"""
Verification: compare generated Python scoring code against XGBoost predictions.

Workflow:
  1. Load the XGBoost model in Python
  2. Generate random test feature vectors (with optional NaN injection)
  3. Score with XGBoost (raw margin, base margin pinned to the decoded
     base score) → ground truth
  4. Generate the Python module, load it, score the same vectors
  5. Compare outputs within tolerance

Pinning the base margin makes the comparison independent of how the
objective stores base_score (probability vs. margin space).
"""

import logging
from pathlib import Path
from typing import Callable, Union

import numpy as np
import xgboost as xgb

from .generator import PythonCodeGenerator

logger = logging.getLogger(__name__)


def load_scoring_function(code: str, function_name: str = "score") -> Callable:
    """Execute generated module text in a fresh namespace and return its scorer."""
    namespace: dict = {"__name__": f"xgb_codegen_generated_{function_name}"}
    exec(compile(code, f"<{function_name}>", "exec"), namespace)
    return namespace[function_name]


def _load_booster(model: Union[str, Path, xgb.Booster]) -> xgb.Booster:
    if isinstance(model, xgb.Booster):
        return model
    booster = xgb.Booster()
    booster.load_model(str(model))
    return booster


def verify(
    model: Union[str, Path, xgb.Booster],
    n_samples: int = 1000,
    tolerance: float = 1e-5,
    nan_fraction: float = 0.05,
    function_name: str = "score",
    seed: int = 42,
) -> dict:
    """
    End-to-end verification of generated scoring code.

    Args:
        model: Path to an XGBoost model file, or a Booster
        n_samples: Number of random test samples
        tolerance: Maximum allowed absolute difference per output
        nan_fraction: Fraction of feature values set to NaN (tests missing handling)
        function_name: Name of the generated scoring function
        seed: Seed for the random test data

    Returns:
        dict with keys: success, n_samples, max_diff, mean_diff, tolerance,
                        expected_range, actual_range, worst_samples, and
                        optionally error
    """
    if n_samples <= 0:
        return {"success": False, "error": f"n_samples must be positive, got {n_samples}"}

    gen = PythonCodeGenerator(model, function_name=function_name)
    booster = _load_booster(model)
    info = gen.model_info

    num_features = info.num_features or booster.num_features()
    if num_features <= 0:
        return {"success": False, "error": "Model reports no features"}

    rng = np.random.RandomState(seed)
    X = rng.randn(n_samples, num_features).astype(np.float32)

    # Inject some NaNs to test missing-value handling
    if nan_fraction > 0:
        n_nan = int(n_samples * num_features * nan_fraction)
        nan_rows = rng.randint(0, n_samples, size=n_nan)
        nan_cols = rng.randint(0, num_features, size=n_nan)
        X[nan_rows, nan_cols] = np.nan
        logger.info("Injected %d NaN values (%.1f%%)", n_nan, nan_fraction * 100)

    bases = np.array(info.base_score, dtype=np.float32)
    if info.num_class == 1:
        base_margin = np.full(n_samples, bases[0], dtype=np.float32)
    else:
        base_margin = np.tile(np.resize(bases, info.num_class), (n_samples, 1))

    iteration_range = (0, 0)
    if info.best_iteration is not None:
        iteration_range = (0, info.best_iteration + 1)

    # Ground truth from XGBoost Python
    dmat = xgb.DMatrix(X, base_margin=base_margin)
    expected = booster.predict(
        dmat, output_margin=True, iteration_range=iteration_range,
    ).astype(np.float64)

    # Generate and run the Python module
    score = load_scoring_function(gen.generate_code(), function_name)
    actual = np.array([score(row) for row in X.astype(np.float64).tolist()], dtype=np.float64)

    return _compare(expected, actual, n_samples, nan_fraction, tolerance)


def _compare(
    expected: np.ndarray,
    actual: np.ndarray,
    n_samples: int,
    nan_fraction: float,
    tolerance: float,
) -> dict:
    """Compare expected vs actual scores and return result dict."""
    if actual.shape != expected.shape:
        return {
            "success": False,
            "error": f"Output shape mismatch: expected {expected.shape}, got {actual.shape}",
        }

    # One row per sample; multi-class outputs are judged by their worst slot.
    diffs = np.abs(expected - actual).reshape(n_samples, -1).max(axis=1)
    max_diff = float(np.max(diffs))
    mean_diff = float(np.mean(diffs))
    passed = max_diff < tolerance

    flat_expected = expected.reshape(n_samples, -1)
    flat_actual = actual.reshape(n_samples, -1)
    worst_indices = np.argsort(diffs)[-5:][::-1]
    worst_samples = [
        {
            "index": int(idx),
            "expected": flat_expected[idx].tolist(),
            "actual": flat_actual[idx].tolist(),
            "diff": float(diffs[idx]),
        }
        for idx in worst_indices
    ]

    return {
        "success": passed,
        "n_samples": n_samples,
        "nan_fraction": nan_fraction,
        "max_diff": max_diff,
        "mean_diff": mean_diff,
        "tolerance": tolerance,
        "expected_range": [float(expected.min()), float(expected.max())],
        "actual_range": [float(actual.min()), float(actual.max())],
        "worst_samples": worst_samples,
    }
