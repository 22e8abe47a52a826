import logging
from dataclasses import dataclass
from functools import partial

import numpy as np

from copula_families.base import CopulaFamily
from copula_families.empirical import sn_statistic
from copula_families.registry import family_module
from copula_fit import NUMERICAL_ERRORS, fit_copula_family
from marginals.pseudo_obs import from_sample
from resampling import ReplicateOutcome, run_replicates, spawn_seeds, successful_values

logger = logging.getLogger(__name__)

ASYMPTOTIC_METHOD = "sn_asymptotic_statistic_only"
COMONOTONIC_METHOD = "comonotonic_observed_only"
DEFAULT_N_BOOTSTRAP = 100


@dataclass(frozen=True)
class GoodnessOfFitResult:
    family: CopulaFamily
    statistic: float
    p_value: float
    method: str
    n_bootstrap: int = 0

    @property
    def failed(self):
        return self.method.startswith(("failed:", "t_failed:"))

    def passed(self, alpha=0.05):
        """p > alpha (strict), None when there is no p-value."""
        if not np.isfinite(self.p_value):
            return None
        return bool(self.p_value > alpha)


def bootstrap_method(family, n_bootstrap):
    if family == CopulaFamily.STUDENT_T:
        return f"t_sn_parametric_bootstrap_df_estimated_N={n_bootstrap}"
    return f"sn_parametric_bootstrap_N={n_bootstrap}"


def _failure(family, reason):
    prefix = "t_failed" if family == CopulaFamily.STUDENT_T else "failed"
    logger.warning("Goodness-of-fit for %s copula failed: %s", family, reason)
    return GoodnessOfFitResult(family, np.nan, np.nan, f"{prefix}: {reason}")


def fitted_cdf(fit, u, v):
    """
    C_theta evaluated at the observed pseudo-observations.
    """
    module = family_module(fit.family)
    with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
        values = np.asarray(module.cdf(u, v, *fit.params), dtype=float)
    if not np.all(np.isfinite(values)):
        raise FloatingPointError(f"fitted {fit.family} copula CDF is not finite")
    return values


def observed_statistic(pobs, fit):
    return float(sn_statistic(pobs.u, pobs.v, fitted_cdf(fit, pobs.u, pobs.v)))


def _bootstrap_replicate(fit, n, index, seed):
    """
    One parametric bootstrap draw: simulate from the fit, re-rank, refit the
    same family (re-estimating every parameter, df included) and recompute S_n.
    """
    rng = np.random.default_rng(seed)
    module = family_module(fit.family)
    try:
        with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
            u, v = module.sample(fit.params, n, rng)
        pobs = from_sample(u, v, rng)
        outcome = fit_copula_family(pobs, fit.family)
        if not outcome.ok:
            return ReplicateOutcome(index, error=outcome.error)
        stat = observed_statistic(pobs, outcome.fit)
    except NUMERICAL_ERRORS as exc:
        return ReplicateOutcome(index, error=str(exc))
    return ReplicateOutcome(index, value=stat)


def evaluate_goodness_of_fit(pobs, fit, n_bootstrap=DEFAULT_N_BOOTSTRAP, seed=None, n_jobs=1, progress=False):
    """
    Cramer-von Mises goodness-of-fit test of one fitted copula.

    Parameters:
        pobs: PseudoObservations the fit was estimated on.
        fit: CopulaFit
        n_bootstrap: int
            Parametric bootstrap replicates; 0 reports the statistic only.
        seed: int or SeedSequence for the replicate streams.

    Returns:
        GoodnessOfFitResult. Numerical failures are reported through a
        "failed:" (or "t_failed:") method label with NaN statistic and p-value.
    """
    family = fit.family
    try:
        statistic = observed_statistic(pobs, fit)
    except NUMERICAL_ERRORS as exc:
        return _failure(family, str(exc))

    if family == CopulaFamily.COMONOTONIC:
        return GoodnessOfFitResult(family, statistic, np.nan, COMONOTONIC_METHOD)
    if n_bootstrap <= 0:
        return GoodnessOfFitResult(family, statistic, np.nan, ASYMPTOTIC_METHOD)

    replicate = partial(_bootstrap_replicate, fit, pobs.n)
    outcomes = run_replicates(
        replicate, spawn_seeds(seed, n_bootstrap), n_jobs=n_jobs, progress=progress, desc=f"GoF {family}"
    )
    stats = np.asarray(successful_values(outcomes), dtype=float)
    required = max(1, n_bootstrap // 2)
    if stats.size < required:
        return _failure(family, f"only {stats.size} of {n_bootstrap} bootstrap replicates succeeded")

    p_value = float(np.mean(stats >= statistic))
    return GoodnessOfFitResult(family, statistic, p_value, bootstrap_method(family, n_bootstrap), int(stats.size))


def evaluate_all_families(pobs, fits, n_bootstrap=DEFAULT_N_BOOTSTRAP, seed=None, n_jobs=1, progress=False):
    """
    GoF for every fitted family. Each family gets its own child seed so adding
    or removing a family does not change the others' p-values.
    """
    fits = getattr(fits, "fits", fits)
    base = seed if isinstance(seed, np.random.SeedSequence) else np.random.SeedSequence(seed)
    results = {}
    for family, fit in fits.items():
        family_seed = np.random.SeedSequence(
            base.entropy, spawn_key=base.spawn_key + (_family_index(family),)
        )
        results[family] = evaluate_goodness_of_fit(
            pobs, fit, n_bootstrap=n_bootstrap, seed=family_seed, n_jobs=n_jobs, progress=progress
        )
    return results


def _family_index(family):
    return list(CopulaFamily).index(family)


def main():
    import pandas as pd

    from copula_fit import fit_copula_families
    from marginals.pseudo_obs import rank_pseudo_obs

    rng = np.random.default_rng(0)
    u, v = family_module(CopulaFamily.CLAYTON).sample((2.0,), 300, rng)
    pobs = rank_pseudo_obs(u, v, seed=1)
    fits = fit_copula_families(pobs)
    results = evaluate_all_families(pobs, fits, n_bootstrap=50, seed=2, progress=True)

    print("Goodness-of-fit (higher p-value is better):")
    table = pd.DataFrame(
        [
            {"family": str(f), "aic": fits[f].aic, "S_n": r.statistic, "p_value": r.p_value, "method": r.method}
            for f, r in results.items()
        ]
    )
    print(table.to_string(index=False))


if __name__ == "__main__":
    main()
