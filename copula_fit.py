import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple

import numpy as np
from scipy.stats import kendalltau, spearmanr

from copula_families import student_t
from copula_families.base import CopulaFamily, FitFailure
from copula_families.registry import DEFAULT_FAMILIES, family_module, parse_family

logger = logging.getLogger(__name__)

# Errors a family's likelihood or optimizer may raise on degenerate data.
NUMERICAL_ERRORS = (FitFailure, FloatingPointError, ZeroDivisionError, ValueError, np.linalg.LinAlgError)


class AllFitsFailed(RuntimeError):
    """No requested copula family could be fitted to the pseudo-observations."""

    def __init__(self, failures):
        detail = "; ".join(f"{family}: {reason}" for family, reason in failures.items())
        super().__init__(f"All copula fits failed ({detail})")
        self.failures = dict(failures)


@dataclass(frozen=True)
class CopulaFit:
    family: CopulaFamily
    params: Tuple[float, ...]
    loglik: float
    aic: float
    bic: float
    kendall_tau: float
    tail_lower: float
    tail_upper: float
    n_obs: int
    estimation_method: str = "mle"
    integer_df_fit: Optional["CopulaFit"] = field(default=None, compare=False)

    @property
    def n_params(self):
        return family_module(self.family).N_PARAMS

    @property
    def rho(self):
        if self.family in (CopulaFamily.GAUSSIAN, CopulaFamily.STUDENT_T):
            return self.params[0]
        return np.nan

    @property
    def df(self):
        return self.params[1] if self.family == CopulaFamily.STUDENT_T else np.nan

    @property
    def theta(self):
        if self.family in (CopulaFamily.CLAYTON, CopulaFamily.GUMBEL, CopulaFamily.FRANK):
            return self.params[0]
        return np.nan

    def to_record(self):
        return {
            "family": self.family.value,
            "parameter_1": self.params[0] if len(self.params) > 0 else np.nan,
            "parameter_2": self.params[1] if len(self.params) > 1 else np.nan,
            "correlation_rho": self.rho,
            "degrees_freedom": self.df,
            "theta": self.theta,
            "loglik": self.loglik,
            "aic": self.aic,
            "bic": self.bic,
            "tau": self.kendall_tau,
            "tail_dep_lower": self.tail_lower,
            "tail_dep_upper": self.tail_upper,
            "estimation_method": self.estimation_method,
        }


def information_criteria(loglik, k, n):
    aic = -2.0 * loglik + 2.0 * k
    bic = -2.0 * loglik + np.log(n) * k
    return aic, bic


def build_fit(family, params, loglik, n):
    """
    Derive the full CopulaFit record from estimated parameters and log-likelihood.
    """
    module = family_module(family)
    aic, bic = information_criteria(loglik, module.N_PARAMS, n)
    lower, upper = module.tail_dependence(*params)
    return CopulaFit(
        family=module.FAMILY,
        params=tuple(float(p) for p in params),
        loglik=float(loglik),
        aic=float(aic),
        bic=float(bic),
        kendall_tau=float(module.kendall_tau(*params)),
        tail_lower=float(lower),
        tail_upper=float(upper),
        n_obs=int(n),
        estimation_method=module.ESTIMATION_METHOD,
    )


def _with_integer_df(fit, u, v):
    """
    Attach a copy of a Student-t fit with df rounded to an integer, for consumers
    that cannot handle non-integer df. The continuous fit stays authoritative.
    """
    rho, df = fit.params
    df_int = student_t.integer_df(df)
    loglik = float(np.sum(student_t.logpdf(u, v, rho, df_int)))
    rounded = build_fit(CopulaFamily.STUDENT_T, (rho, df_int), loglik, fit.n_obs)
    return replace(fit, integer_df_fit=rounded)


@dataclass(frozen=True)
class FitOutcome:
    family: CopulaFamily
    fit: Optional[CopulaFit] = None
    error: Optional[str] = None

    @property
    def ok(self):
        return self.fit is not None


def fit_copula_family(pobs, family):
    """
    Fit one copula family to pseudo-observations.

    Parameters:
        pobs: PseudoObservations.
        family: CopulaFamily or its string name.

    Returns:
        FitOutcome holding either the CopulaFit or the failure reason.
    """
    family = parse_family(family)
    module = family_module(family)
    u, v = pobs.u, pobs.v
    try:
        with np.errstate(divide="ignore", over="ignore", invalid="ignore"):
            params, loglik = module.fit(u, v)
            if not np.isfinite(loglik):
                raise FitFailure(family, "non-finite log-likelihood")
            fit = build_fit(family, params, loglik, pobs.n)
            if family == CopulaFamily.STUDENT_T:
                fit = _with_integer_df(fit, u, v)
    except NUMERICAL_ERRORS as exc:
        return FitOutcome(family, error=str(exc))
    return FitOutcome(family, fit=fit)


@dataclass(frozen=True)
class FamilyFits:
    fits: Dict[CopulaFamily, CopulaFit]
    failures: Dict[CopulaFamily, str]
    n_obs: int

    @property
    def best_family(self):
        return select_best_family(self.fits)

    @property
    def best_fit(self):
        return self.fits[self.best_family]

    def __getitem__(self, family):
        return self.fits[parse_family(family)]

    def __contains__(self, family):
        return parse_family(family) in self.fits


def fit_copula_families(pobs, families=DEFAULT_FAMILIES):
    """
    Fit every requested family, keeping the successes in request order.

    A family that fails is logged and dropped; if nothing succeeds the
    condition cannot proceed to model selection and AllFitsFailed is raised.
    """
    fits = {}
    failures = {}
    for family in families:
        outcome = fit_copula_family(pobs, family)
        if outcome.ok:
            fits[outcome.family] = outcome.fit
        else:
            logger.warning("Failed to fit %s copula: %s", outcome.family, outcome.error)
            failures[outcome.family] = outcome.error
    if not fits:
        raise AllFitsFailed(failures)
    return FamilyFits(fits=fits, failures=failures, n_obs=pobs.n)


def select_best_family(fits):
    """
    Family with the minimum AIC. Ties go to the family fitted first.
    """
    if not fits:
        raise ValueError("Cannot select a copula family from an empty set of fits.")
    best = None
    for family, fit in fits.items():
        if best is None or fit.aic < fits[best].aic:
            best = family
    return best


def empirical_dependence(pobs):
    return {
        "kendall_tau": float(kendalltau(pobs.u, pobs.v).statistic),
        "spearman_rho": float(spearmanr(pobs.u, pobs.v).statistic),
        "pearson_r": float(np.corrcoef(pobs.u, pobs.v)[0, 1]),
    }
