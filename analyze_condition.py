import logging
import os
import sys
import zlib
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np
import pandas as pd
from joblib import Parallel, delayed

from analysis_config import AnalysisConfig
from copula_families.base import CopulaFamily
from copula_fit import AllFitsFailed, empirical_dependence, fit_copula_families
from copula_stability import StabilityThresholds, estimate_parameter_stability
from evaluate_copulas import evaluate_all_families
from marginals.pseudo_obs import make_pseudo_obs
from resampling import spawn_seeds

logger = logging.getLogger(__name__)

PRIOR_COLUMN = "SCALE_SCORE_PRIOR"
CURRENT_COLUMN = "SCALE_SCORE_CURRENT"
CONDITION_COLUMN = "CONDITION_ID"

STABILITY_COLUMNS = ("tau_cv", "tau_lower", "tau_upper", "tau_grade", "df_cv", "df_lower", "df_upper", "df_grade")


class ConditionError(RuntimeError):
    def __init__(self, condition_id, message):
        super().__init__(condition_id, message)
        self.condition_id = condition_id
        self.message = message

    def __str__(self):
        return f"Condition {self.condition_id!r}: {self.message}"


def condition_seed(base_seed, condition_id=None):
    """
    Seed for one condition, derived from the base seed and a CRC32 of the
    condition id so it does not depend on which other conditions run.
    """
    if condition_id is None:
        return np.random.SeedSequence(base_seed)
    key = zlib.crc32(str(condition_id).encode("utf-8"))
    return np.random.SeedSequence(base_seed, spawn_key=(key,))


@dataclass(frozen=True)
class ConditionResult:
    condition_id: Optional[str]
    n_pairs: int
    best_family: CopulaFamily
    empirical_tau: float
    fits: Dict
    failures: Dict
    gof: Dict
    stability: Optional[object] = None

    def to_frame(self):
        """
        One row per fitted family, in fitting order. Stability columns are
        filled on the row of the family the stability bootstrap was run for.
        """
        rows = []
        for family, fit in self.fits.items():
            row = {"condition_id": self.condition_id, "n_pairs": self.n_pairs}
            row.update(fit.to_record())
            gof = self.gof.get(family)
            row["gof_statistic"] = gof.statistic if gof is not None else np.nan
            row["gof_pvalue"] = gof.p_value if gof is not None else np.nan
            row["gof_pass_0.05"] = gof.passed(0.05) if gof is not None else None
            row["gof_method"] = gof.method if gof is not None else None
            row["is_best"] = family == self.best_family
            row.update(dict.fromkeys(STABILITY_COLUMNS))
            if self.stability is not None and self.stability.family == family:
                row.update(_stability_columns(self.stability))
            rows.append(row)
        frame = pd.DataFrame(rows)
        frame.attrs["best_family"] = self.best_family.value
        return frame


def _stability_columns(stability):
    tau = stability.tau
    columns = {"tau_cv": tau.cv, "tau_lower": tau.lower, "tau_upper": tau.upper, "tau_grade": tau.grade}
    if stability.df is not None:
        df = stability.df
        columns.update({"df_cv": df.cv, "df_lower": df.lower, "df_upper": df.upper, "df_grade": df.grade})
    return columns


def analyze_condition(
    scores_prior,
    scores_current,
    config=None,
    condition_id=None,
    cdf_prior=None,
    cdf_current=None,
):
    """
    Full analysis of one condition: pseudo-observations, every family's fit,
    AIC selection, goodness of fit per family and stability of the designated
    family (the best one unless configured otherwise).

    Parameters:
        scores_prior, scores_current: 1D arrays of paired scores, NA removed.
        config: AnalysisConfig, defaults to AnalysisConfig().
        condition_id: identifier used for seeding and error reporting.
        cdf_prior, cdf_current: marginal CDF callables for smoothed mode.

    Returns:
        ConditionResult

    Raises:
        ConditionError if the input is invalid, smoothed mode is missing its
        CDFs, or no family could be fitted.
    """
    config = config or AnalysisConfig()
    pobs_seed, gof_seed, stability_seed = spawn_seeds(condition_seed(config.seed, condition_id), 3)

    try:
        pobs = make_pseudo_obs(
            scores_prior,
            scores_current,
            mode=config.pseudo_obs_mode,
            seed=pobs_seed,
            cdf_x=cdf_prior,
            cdf_y=cdf_current,
            epsilon=config.epsilon,
        )
    except ValueError as exc:
        raise ConditionError(condition_id, str(exc)) from exc
    try:
        fits = fit_copula_families(pobs, config.families)
    except AllFitsFailed as exc:
        raise ConditionError(condition_id, str(exc)) from exc

    best = fits.best_family
    empirical_tau = empirical_dependence(pobs)["kendall_tau"]
    logger.info(
        "Condition %s: n=%d, empirical tau=%.4f, best family %s (AIC %.2f)",
        condition_id, pobs.n, empirical_tau, best, fits.best_fit.aic,
    )

    gof = evaluate_all_families(
        pobs, fits, n_bootstrap=config.n_bootstrap_gof, seed=gof_seed, n_jobs=config.n_jobs, progress=config.progress
    )

    stability = None
    if config.n_bootstrap_stability > 0:
        stability = estimate_parameter_stability(
            pobs,
            config.stability_family or best,
            n_bootstrap=config.n_bootstrap_stability,
            seed=stability_seed,
            min_successes=config.min_stability_successes,
            interval=config.stability_interval,
            thresholds=StabilityThresholds(config.stability_cv_stable, config.stability_cv_marginal),
            n_jobs=config.n_jobs,
            progress=config.progress,
        )

    return ConditionResult(
        condition_id=condition_id,
        n_pairs=pobs.n,
        best_family=best,
        empirical_tau=empirical_tau,
        fits=dict(fits.fits),
        failures=dict(fits.failures),
        gof=gof,
        stability=stability,
    )


def _analyze_or_error(condition_id, inputs, config):
    scores_prior, scores_current, *cdfs = inputs
    cdf_prior, cdf_current = cdfs if cdfs else (None, None)
    try:
        result = analyze_condition(
            scores_prior, scores_current, config, condition_id=condition_id, cdf_prior=cdf_prior, cdf_current=cdf_current
        )
    except ConditionError as exc:
        return condition_id, None, exc
    return condition_id, result, None


def analyze_conditions(conditions, config=None, n_jobs=1):
    """
    Analyze many conditions; a failing condition is logged and collected
    without stopping the rest.

    Parameters:
        conditions: mapping condition_id -> (scores_prior, scores_current), or
            (scores_prior, scores_current, cdf_prior, cdf_current) for
            smoothed pseudo-observations.

    Returns:
        (results, errors): dicts keyed by condition id.
    """
    config = config or AnalysisConfig()
    for cid, inputs in conditions.items():
        if len(inputs) not in (2, 4):
            raise ValueError(f"Condition {cid!r}: expected 2 or 4 inputs, got {len(inputs)}.")
    jobs = [delayed(_analyze_or_error)(cid, inputs, config) for cid, inputs in conditions.items()]
    results = {}
    errors = {}
    for cid, result, error in Parallel(n_jobs=n_jobs)(jobs):
        if error is not None:
            logger.error("%s", error)
            errors[cid] = error
        else:
            results[cid] = result
    return results, errors


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    path = sys.argv[1] if len(sys.argv) > 1 else os.getenv("PAIRS_CSV", "pairs.csv")
    config = AnalysisConfig.from_env(progress=True)
    data = pd.read_csv(path).dropna(subset=[PRIOR_COLUMN, CURRENT_COLUMN])

    if CONDITION_COLUMN in data.columns:
        conditions = {
            str(cid): (group[PRIOR_COLUMN].values, group[CURRENT_COLUMN].values)
            for cid, group in data.groupby(CONDITION_COLUMN, sort=False)
        }
    else:
        conditions = {os.path.basename(path): (data[PRIOR_COLUMN].values, data[CURRENT_COLUMN].values)}

    results, errors = analyze_conditions(conditions, config)
    for cid, result in results.items():
        frame = result.to_frame()
        print(f"\n{cid}: best family = {result.best_family} (empirical tau {result.empirical_tau:.3f})")
        print(frame[["family", "loglik", "aic", "bic", "tau", "gof_pvalue", "gof_method", "tau_cv", "tau_grade"]].to_string(index=False))
    for cid, error in errors.items():
        print(f"\n{cid}: FAILED ({error})")


if __name__ == "__main__":
    main()
