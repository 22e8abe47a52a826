"""
Bootstrap stability of fitted copula parameters.

Two procedures live here:

- estimate_parameter_stability refits one family on B paired resamples and
  reports the dispersion of Kendall's tau (and, for the t copula, of the
  degrees of freedom) together with a stable/marginal/unstable grade.
- bootstrap_family_selection refits every family on each resample and records
  which family AIC picks, summarised per family by summarize_family_bootstrap.
"""
import logging
from dataclasses import dataclass
from functools import partial
from typing import Optional, Tuple

import numpy as np
import pandas as pd

from copula_families.base import CopulaFamily
from copula_families.registry import DEFAULT_FAMILIES, parse_family
from copula_fit import NUMERICAL_ERRORS, fit_copula_family, select_best_family
from marginals.pseudo_obs import PseudoObservations, random_ranks, resample
from resampling import ReplicateOutcome, run_replicates, spawn_seeds, successful_values

logger = logging.getLogger(__name__)

DEFAULT_N_BOOTSTRAP = 100
DEFAULT_MIN_SUCCESSES = 10
SAMPLING_METHODS = ("paired", "independent")


@dataclass(frozen=True)
class StabilityThresholds:
    stable: float = 5.0
    marginal: float = 10.0

    def grade(self, cv):
        if not np.isfinite(cv):
            return "undefined"
        if cv < self.stable:
            return "stable"
        if cv < self.marginal:
            return "marginal"
        return "unstable"


@dataclass(frozen=True)
class StabilityResult:
    statistic: str
    estimate: float
    boot_mean: float
    sd: float
    iqr: float
    cv: float
    lower: float
    upper: float
    n_successful: int
    grade: str
    samples: Tuple[float, ...] = ()


@dataclass(frozen=True)
class ParameterStability:
    family: CopulaFamily
    tau: StabilityResult
    df: Optional[StabilityResult]
    n_bootstrap: int
    n_successful: int
    status: str

    @property
    def ok(self):
        return self.status == "ok"


def _empty_result(statistic, estimate, n_successful=0):
    return StabilityResult(
        statistic, float(estimate), np.nan, np.nan, np.nan, np.nan, np.nan, np.nan, n_successful, "undefined"
    )


def summarize_samples(statistic, estimate, samples, interval=0.95, thresholds=StabilityThresholds()):
    """
    Dispersion summary of bootstrap values around the full-data estimate.

    Parameters:
        statistic: str
            Name of the summarised quantity ("tau" or "df").
        estimate: float
            Full-data value; the CV is taken relative to its magnitude.
        samples: 1D array of successful bootstrap values.
        interval: float
            Coverage of the symmetric percentile interval.

    Returns:
        StabilityResult
    """
    samples = np.asarray(samples, dtype=float)
    alpha = (1.0 - interval) / 2.0
    sd = float(np.std(samples, ddof=1)) if samples.size > 1 else np.nan
    q25, q75 = np.percentile(samples, [25, 75])
    lower, upper = np.quantile(samples, [alpha, 1.0 - alpha])
    cv = sd / abs(estimate) * 100.0 if estimate != 0 and np.isfinite(estimate) else np.nan
    return StabilityResult(
        statistic=statistic,
        estimate=float(estimate),
        boot_mean=float(np.mean(samples)),
        sd=sd,
        iqr=float(q75 - q25),
        cv=float(cv),
        lower=float(lower),
        upper=float(upper),
        n_successful=int(samples.size),
        grade=thresholds.grade(cv),
        samples=tuple(float(s) for s in samples),
    )


def _refit_replicate(pobs, family, index, seed):
    rng = np.random.default_rng(seed)
    rows = rng.integers(0, pobs.n, size=pobs.n)
    try:
        outcome = fit_copula_family(resample(pobs, rows, rng), family)
    except NUMERICAL_ERRORS as exc:
        return ReplicateOutcome(index, error=str(exc))
    if not outcome.ok:
        return ReplicateOutcome(index, error=outcome.error)
    return ReplicateOutcome(index, value=(outcome.fit.kendall_tau, outcome.fit.df))


def estimate_parameter_stability(
    pobs,
    family,
    n_bootstrap=DEFAULT_N_BOOTSTRAP,
    seed=None,
    min_successes=DEFAULT_MIN_SUCCESSES,
    interval=0.95,
    thresholds=StabilityThresholds(),
    n_jobs=1,
    progress=False,
):
    """
    Paired nonparametric bootstrap of one family's Kendall's tau (and df for t).

    Failed refits are discarded; with fewer than min_successes left the result
    carries status "insufficient_successes" and NaN statistics.
    """
    family = parse_family(family)
    reference = fit_copula_family(pobs, family)
    if not reference.ok:
        logger.warning("Reference fit for %s stability failed: %s", family, reference.error)
        return ParameterStability(family, _empty_result("tau", np.nan), None, n_bootstrap, 0, "reference_fit_failed")

    ref_tau = reference.fit.kendall_tau
    ref_df = reference.fit.df
    is_t = family == CopulaFamily.STUDENT_T

    outcomes = run_replicates(
        partial(_refit_replicate, pobs, family),
        spawn_seeds(seed, n_bootstrap),
        n_jobs=n_jobs,
        progress=progress,
        desc=f"stability {family}",
    )
    values = successful_values(outcomes)
    n_ok = len(values)
    if n_ok < min_successes:
        logger.warning(
            "Stability for %s: only %d of %d bootstrap refits succeeded (need %d)",
            family, n_ok, n_bootstrap, min_successes,
        )
        df_result = _empty_result("df", ref_df, n_ok) if is_t else None
        return ParameterStability(
            family, _empty_result("tau", ref_tau, n_ok), df_result, n_bootstrap, n_ok, "insufficient_successes"
        )

    taus = [tau for tau, _ in values]
    tau_result = summarize_samples("tau", ref_tau, taus, interval, thresholds)
    df_result = None
    if is_t:
        df_result = summarize_samples("df", ref_df, [df for _, df in values], interval, thresholds)
    return ParameterStability(family, tau_result, df_result, n_bootstrap, n_ok, "ok")


@dataclass(frozen=True)
class FamilySelectionBootstrap:
    families: Tuple[CopulaFamily, ...]
    sampling: str
    n_bootstrap: int
    taus: Tuple[dict, ...]
    best_families: Tuple[Optional[CopulaFamily], ...]


def _independent_resample(pobs, rng, n):
    u = pobs.u[rng.integers(0, pobs.n, size=n)]
    v = pobs.v[rng.integers(0, pobs.n, size=n)]
    if pobs.mode == "rank":
        return PseudoObservations(random_ranks(u, rng) / (n + 1), random_ranks(v, rng) / (n + 1), mode="rank")
    return PseudoObservations(u, v, mode=pobs.mode)


def _selection_replicate(pobs, families, sampling, n_sample, index, seed):
    rng = np.random.default_rng(seed)
    try:
        if sampling == "paired":
            boot = resample(pobs, rng.integers(0, pobs.n, size=n_sample), rng)
        else:
            boot = _independent_resample(pobs, rng, n_sample)
    except NUMERICAL_ERRORS as exc:
        return ReplicateOutcome(index, error=str(exc))
    fits = {}
    for family in families:
        outcome = fit_copula_family(boot, family)
        if outcome.ok:
            fits[family] = outcome.fit
    if not fits:
        return ReplicateOutcome(index, error="all copula fits failed")
    taus = {family: fit.kendall_tau for family, fit in fits.items()}
    return ReplicateOutcome(index, value=(taus, select_best_family(fits)))


def bootstrap_family_selection(
    pobs,
    families=DEFAULT_FAMILIES,
    n_bootstrap=DEFAULT_N_BOOTSTRAP,
    seed=None,
    sampling="paired",
    n_sample=None,
    n_jobs=1,
    progress=False,
):
    """
    Refit every family on B resamples.

    sampling="paired" draws whole rows and keeps the dependence;
    sampling="independent" draws each margin separately, which breaks it and
    gives the null behaviour of the selector.
    """
    if sampling not in SAMPLING_METHODS:
        raise ValueError(f"Unknown sampling method: {sampling!r}. Expected one of {SAMPLING_METHODS}.")
    families = tuple(parse_family(f) for f in families)
    n_sample = pobs.n if n_sample is None else int(n_sample)
    outcomes = run_replicates(
        partial(_selection_replicate, pobs, families, sampling, n_sample),
        spawn_seeds(seed, n_bootstrap),
        n_jobs=n_jobs,
        progress=progress,
        desc="family selection",
    )
    values = successful_values(outcomes)
    return FamilySelectionBootstrap(
        families=families,
        sampling=sampling,
        n_bootstrap=n_bootstrap,
        taus=tuple(taus for taus, _ in values),
        best_families=tuple(best for _, best in values),
    )


def summarize_family_bootstrap(result, reference_fits=None):
    """
    One row per family with the bootstrap distribution of tau and the share of
    replicates in which AIC selected that family.

    Parameters:
        result: FamilySelectionBootstrap
        reference_fits: optional mapping family -> CopulaFit (or FamilyFits)
            adding tau_true and tau_bias columns.

    Returns:
        pandas DataFrame
    """
    if reference_fits is not None:
        reference_fits = getattr(reference_fits, "fits", reference_fits)
    rows = []
    for family in result.families:
        taus = np.array([t[family] for t in result.taus if family in t], dtype=float)
        if taus.size == 0:
            continue
        q05, q95 = np.quantile(taus, [0.05, 0.95])
        row = {
            "family": family.value,
            "n_successful": int(taus.size),
            "tau_mean": float(np.mean(taus)),
            "tau_sd": float(np.std(taus, ddof=1)) if taus.size > 1 else np.nan,
            "tau_median": float(np.median(taus)),
            "tau_q05": float(q05),
            "tau_q95": float(q95),
            "ci_width": float(q95 - q05),
            "selection_freq": sum(1 for b in result.best_families if b == family) / result.n_bootstrap,
        }
        if reference_fits is not None and family in reference_fits:
            row["tau_true"] = reference_fits[family].kendall_tau
            row["tau_bias"] = row["tau_mean"] - row["tau_true"]
        rows.append(row)
    return pd.DataFrame(rows)
