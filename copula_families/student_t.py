import numpy as np
from scipy.optimize import minimize
from scipy.special import gammaln
from scipy.stats import kendalltau, t as student_t

from copula_families.base import CopulaFamily, FitFailure, check_optimum, integrate_conditional

FAMILY = CopulaFamily.STUDENT_T
N_PARAMS = 2
ESTIMATION_METHOD = "mle"
RHO_BOUNDS = (-0.999, 0.999)
DF_BOUNDS = (2.01, 100.0)
DF_STARTS = (4.0, 10.0, 30.0)


def logpdf(u, v, rho, df):
    """
    Log-density of the bivariate t copula with correlation rho and (possibly
    non-integer) degrees of freedom df.
    """
    x = student_t.ppf(u, df)
    y = student_t.ppf(v, df)
    det = 1.0 - rho ** 2
    quad = (x ** 2 + y ** 2 - 2 * rho * x * y) / det
    log_const = gammaln((df + 2) / 2.0) + gammaln(df / 2.0) - 2.0 * gammaln((df + 1) / 2.0)
    return (
        log_const
        - 0.5 * np.log(det)
        - ((df + 2) / 2.0) * np.log1p(quad / df)
        + ((df + 1) / 2.0) * (np.log1p(x ** 2 / df) + np.log1p(y ** 2 / df))
    )


def hfunc(u, v, rho, df):
    """P(U <= u | V = v)."""
    z = student_t.ppf(u, df)
    t_ = student_t.ppf(v, df)
    scale = np.sqrt((df + 1) / ((df + t_ ** 2) * (1 - rho ** 2)))
    return student_t.cdf((z - rho * t_) * scale, df + 1)


def cdf(u, v, rho, df):
    u = np.asarray(u, dtype=float)
    v = np.asarray(v, dtype=float)
    if rho == 0.0:
        split = 0.5 * v
    else:
        split = student_t.cdf(student_t.ppf(u, df) / rho, df)
    return integrate_conditional(lambda a, s: hfunc(a, s, rho, df), u, v, split)


def sample(params, n, rng):
    rho, df = params
    z1 = rng.standard_normal(n)
    z2 = rho * z1 + np.sqrt(max(1e-12, 1.0 - rho * rho)) * rng.standard_normal(n)
    s = np.sqrt(rng.chisquare(df, size=n) / df)
    return student_t.cdf(z1 / s, df), student_t.cdf(z2 / s, df)


def fit(u, v):
    """
    Joint maximum likelihood for (rho, df) with df treated as continuous.

    Several df starting values are tried with L-BFGS-B; if none of them
    converges, Nelder-Mead is run from the best point reached.

    Returns:
        ((rho, df), loglik)
    """
    tau = kendalltau(u, v).statistic
    rho0 = np.clip(np.sin(np.pi * tau / 2), -0.95, 0.95)

    def nll(params):
        r, df = params
        if r <= RHO_BOUNDS[0] or r >= RHO_BOUNDS[1] or df < DF_BOUNDS[0] or df > DF_BOUNDS[1]:
            return 1e10
        ll = np.sum(logpdf(u, v, r, df))
        if not np.isfinite(ll):
            return 1e10
        return -ll

    best = None
    fallback = None
    for df0 in DF_STARTS:
        res = minimize(
            nll,
            x0=np.array([rho0, df0]),
            bounds=[RHO_BOUNDS, DF_BOUNDS],
            method="L-BFGS-B",
        )
        if res.success and (best is None or res.fun < best.fun):
            best = res
        if fallback is None or res.fun < fallback.fun:
            fallback = res

    if best is None:
        if fallback is None or not np.isfinite(fallback.fun) or fallback.fun >= 1e10:
            raise FitFailure(FAMILY, "no finite likelihood found from any starting point")
        best = minimize(nll, x0=fallback.x, method="Nelder-Mead", options={"xatol": 1e-6, "fatol": 1e-8, "maxiter": 2000})

    (rho, df), loglik = check_optimum(FAMILY, best)
    return (float(rho), float(df)), loglik


def integer_df(df):
    return float(max(1, int(round(df))))


def kendall_tau(rho, df):
    return 2.0 / np.pi * np.arcsin(rho)


def tail_dependence(rho, df):
    lam = 2.0 * student_t.cdf(-np.sqrt((df + 1) * (1 - rho) / (1 + rho)), df + 1)
    return float(lam), float(lam)
