"""Random-forest imputation of the baseline covariates.

The covariates do not depend on the direction of analysis, so they are
imputed once. The censored outcome flags and both follow-up times join the
imputation model as predictors; the tables written afterwards carry the
original, untouched outcome values joined back by participant.

The loop follows missForest: start from mean/mode fills, then repeatedly
refit one forest per incomplete column (classification forests for
categorical columns, regression forests otherwise) until the imputed values
stop getting closer between rounds or ``max_iter`` is reached.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Mapping

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier, RandomForestRegressor

from .survival import DIRECTIONS
from .waves import ID


LOGGER = logging.getLogger(__name__)

IMPUTED_COVARIATES = [
    "netwealth_q5",
    "alcoholbaseline",
    "smokingbaseline",
    "vigorousactbaseline",
    "agebaseline",
    "sex",
    "region",
    "ethnicgroup",
    "age_cat",
]
OUTCOME_COLUMNS = ["strokeever_10", "strokeever_4", "psychosisever_10", "psychosisever_4", "fuptime"]
UNKNOWN_ETHNICITY = "Unknown"


@dataclass
class ImputationResult:
    imputed: pd.DataFrame
    oob_error: dict[str, float] = field(default_factory=dict)
    elapsed: float = 0.0
    iterations: int = 0


def covariate_frame(master: pd.DataFrame, ids: pd.Series | None = None) -> pd.DataFrame:
    """Baseline covariates with "Unknown" ethnicity recoded to missing."""

    frame = master[[ID, *IMPUTED_COVARIATES]].copy()
    if ids is not None:
        frame = frame[frame[ID].isin(ids)]
    for column in IMPUTED_COVARIATES:
        dtype = frame[column].dtype
        if not isinstance(dtype, pd.CategoricalDtype) and not pd.api.types.is_numeric_dtype(dtype):
            frame[column] = frame[column].astype("category")
    ethnic = frame["ethnicgroup"]
    if UNKNOWN_ETHNICITY in ethnic.cat.categories:
        frame["ethnicgroup"] = ethnic.cat.remove_categories([UNKNOWN_ETHNICITY])
    return frame.reset_index(drop=True)


def outcome_predictors(survival: Mapping[str, pd.DataFrame]) -> pd.DataFrame:
    """Censored outcome flags and the follow-up time of each direction, one row per participant."""

    frames = [
        survival[direction.name][[ID, *direction.censored_columns(), "fuptime"]].rename(
            columns={"fuptime": f"{direction.outcome}_fuptime"}
        )
        for direction in DIRECTIONS
    ]
    predictors = frames[0]
    for frame in frames[1:]:
        predictors = predictors.merge(frame, how="outer", on=ID)
    return predictors


def encode(frame: pd.DataFrame, columns: list[str]) -> tuple[np.ndarray, list[bool]]:
    """Numeric matrix for the forests; categoricals become their integer codes."""

    arrays = []
    categorical = []
    for column in columns:
        series = frame[column]
        if isinstance(series.dtype, pd.CategoricalDtype):
            codes = series.cat.codes.to_numpy().astype(float)
            arrays.append(np.where(codes < 0, np.nan, codes))
            categorical.append(True)
        else:
            arrays.append(series.to_numpy(dtype="float64", na_value=np.nan))
            categorical.append(False)
    return np.column_stack(arrays), categorical


def decode(matrix: np.ndarray, template: pd.DataFrame, columns: list[str]) -> pd.DataFrame:
    decoded = {}
    for i, column in enumerate(columns):
        dtype = template[column].dtype
        values = matrix[:, i]
        if isinstance(dtype, pd.CategoricalDtype):
            codes = np.where(np.isnan(values), -1, values).astype(int)
            decoded[column] = pd.Categorical.from_codes(codes, dtype=dtype)
        else:
            decoded[column] = values
    return pd.DataFrame(decoded, index=template.index)


def initial_fill(matrix: np.ndarray, categorical: list[bool]) -> np.ndarray:
    """Column means for continuous columns and the most frequent code for categorical ones."""

    filled = matrix.copy()
    for j, is_categorical in enumerate(categorical):
        missing = np.isnan(matrix[:, j])
        if not missing.any():
            continue
        observed = matrix[~missing, j]
        if is_categorical:
            values, counts = np.unique(observed, return_counts=True)
            filled[missing, j] = values[np.argmax(counts)]
        else:
            filled[missing, j] = observed.mean()
    return filled


def _forest(is_categorical: bool, n_estimators: int, seed: int, n_jobs: int):
    forest = RandomForestClassifier if is_categorical else RandomForestRegressor
    return forest(n_estimators=n_estimators, random_state=seed, n_jobs=n_jobs, oob_score=True)


def _change(old: np.ndarray, new: np.ndarray, missing: np.ndarray, categorical: np.ndarray) -> tuple[float, float]:
    continuous = ~categorical
    scale = np.sum(new[:, continuous] ** 2)
    continuous_change = np.sum((new[:, continuous] - old[:, continuous]) ** 2) / scale if scale > 0 else 0.0
    n_missing = missing[:, categorical].sum()
    categorical_change = (
        np.sum(new[:, categorical] != old[:, categorical]) / n_missing if n_missing else 0.0
    )
    return float(continuous_change), float(categorical_change)


def miss_forest(
    matrix: np.ndarray,
    categorical: list[bool],
    seed: int = 123,
    n_jobs: int = -1,
    n_estimators: int = 100,
    max_iter: int = 10,
) -> tuple[np.ndarray, dict[int, object], int]:
    """Iteratively refit one forest per incomplete column.

    Returns the imputed matrix, the forests that produced it (keyed by column
    index) and the number of rounds kept. Columns are visited in increasing
    order of missingness. Iteration stops once neither the continuous nor the
    categorical change between rounds decreased; the previous round is kept.
    """

    missing = np.isnan(matrix)
    is_categorical = np.asarray(categorical, dtype=bool)
    order = [int(j) for j in np.argsort(missing.sum(axis=0), kind="stable") if missing[:, j].any()]
    current = initial_fill(matrix, categorical)
    if not order:
        return current, {}, 0

    forests: dict[int, object] = {}
    last_change = (np.inf, np.inf)
    for iteration in range(1, max_iter + 1):
        previous, previous_forests = current, forests
        current, forests = previous.copy(), {}
        for j in order:
            rows = missing[:, j]
            predictors = np.delete(current, j, axis=1)
            forest = _forest(categorical[j], n_estimators, seed, n_jobs)
            forest.fit(predictors[~rows], matrix[~rows, j])
            current[rows, j] = forest.predict(predictors[rows])
            forests[j] = forest
        change = _change(previous, current, missing, is_categorical)
        LOGGER.info(
            "Imputation round %s: continuous change %.4g, categorical change %.4g",
            iteration, change[0], change[1],
        )
        if not (change[0] < last_change[0] or change[1] < last_change[1]):
            return previous, previous_forests, iteration - 1
        last_change = change
    return current, forests, max_iter


def out_of_bag_error(
    forests: Mapping[int, object],
    matrix: np.ndarray,
    categorical: list[bool],
    report: list[int] | None = None,
) -> dict[str, float]:
    """missForest-style diagnostic from the forests of the kept round.

    NRMSE over continuous columns and proportion falsely classified (PFC)
    over categorical columns, counting only columns that had missing values.
    ``report`` restricts the diagnostic to the given column indices.
    """

    missing = np.isnan(matrix)
    normalized_mse, falsely_classified = [], []
    for j, forest in forests.items():
        if report is not None and j not in report:
            continue
        observed = matrix[~missing[:, j], j]
        if categorical[j]:
            votes = forest.oob_decision_function_
            scored = votes.sum(axis=1) > 0
            if not scored.any():
                continue
            predicted = forest.classes_[np.argmax(votes[scored], axis=1)]
            falsely_classified.append(np.mean(predicted != observed[scored]))
        elif observed.var() > 0:
            normalized_mse.append(np.mean((observed - forest.oob_prediction_) ** 2) / observed.var())
    return {
        "NRMSE": float(np.sqrt(np.mean(normalized_mse))) if normalized_mse else float("nan"),
        "PFC": float(np.mean(falsely_classified)) if falsely_classified else float("nan"),
    }


def impute_covariates(
    covariates: pd.DataFrame,
    predictors: pd.DataFrame | None = None,
    seed: int = 123,
    n_jobs: int = -1,
    n_estimators: int = 100,
    max_iter: int = 10,
) -> ImputationResult:
    """Impute ``covariates``; ``predictors`` inform the forests but are not returned."""

    frame = covariates if predictors is None else covariates.merge(predictors, how="left", on=ID)
    targets = [column for column in covariates.columns if column != ID]
    columns = [column for column in frame.columns if column != ID]
    empty = [column for column in columns if frame[column].isna().all()]
    if empty:
        LOGGER.warning("Not imputing columns with no observed values: %s", ", ".join(empty))
        columns = [column for column in columns if column not in empty]
    kept = [column for column in targets if column in columns]
    matrix, categorical = encode(frame, columns)

    LOGGER.info(
        "Imputing %s covariates for %s participants (%s missing cells, %s predictor columns)",
        len(kept), len(frame), int(np.isnan(matrix[:, : len(kept)]).sum()), len(columns) - len(kept),
    )
    started = time.perf_counter()
    filled, forests, iterations = miss_forest(
        matrix, categorical, seed=seed, n_jobs=n_jobs, n_estimators=n_estimators, max_iter=max_iter
    )
    elapsed = time.perf_counter() - started

    positions = [columns.index(column) for column in kept]
    imputed = decode(filled[:, positions], frame, kept)
    for column in targets:
        if column not in kept:
            imputed[column] = frame[column]
    imputed = imputed[targets].copy()
    imputed.insert(0, ID, frame[ID].to_numpy())
    oob_error = out_of_bag_error(forests, matrix, categorical, report=positions)
    LOGGER.info(
        "Imputation finished in %.1fs after %s rounds (OOB NRMSE=%.4f, PFC=%.4f)",
        elapsed, iterations, oob_error["NRMSE"], oob_error["PFC"],
    )
    return ImputationResult(imputed=imputed, oob_error=oob_error, elapsed=elapsed, iterations=iterations)


def build_imputed_tables(
    master: pd.DataFrame,
    survival: Mapping[str, pd.DataFrame],
    seed: int = 123,
    n_jobs: int = -1,
    n_estimators: int = 100,
    max_iter: int = 10,
) -> tuple[dict[str, pd.DataFrame], ImputationResult]:
    """One imputed frame per survival direction, plus the imputation diagnostics."""

    predictors = outcome_predictors(survival)
    result = impute_covariates(
        covariate_frame(master, predictors[ID]),
        predictors,
        seed=seed,
        n_jobs=n_jobs,
        n_estimators=n_estimators,
        max_iter=max_iter,
    )
    tables = {
        name: result.imputed.merge(table[[ID, *OUTCOME_COLUMNS]], how="left", on=ID)
        for name, table in survival.items()
    }
    return tables, result
