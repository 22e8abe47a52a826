import numpy as np
from scipy.optimize import minimize_scalar
from scipy.stats import norm

from copula_families.base import CopulaFamily, check_optimum, integrate_conditional

FAMILY = CopulaFamily.GAUSSIAN
N_PARAMS = 1
ESTIMATION_METHOD = "mle"
RHO_BOUNDS = (-0.999, 0.999)


def validate_rho(rho):
    if not -1.0 < rho < 1.0:
        raise ValueError("Correlation must lie strictly inside (-1, 1).")


def logpdf(u, v, rho):
    z1 = norm.ppf(u)
    z2 = norm.ppf(v)
    det = 1 - rho ** 2
    quad = (z1 ** 2 + z2 ** 2 - 2 * rho * z1 * z2) / det
    return -0.5 * (np.log(det) + quad - z1 ** 2 - z2 ** 2)


def hfunc(u, v, rho):
    """P(U <= u | V = v)."""
    z = norm.ppf(u)
    t = norm.ppf(v)
    num = z - rho * t
    den = np.sqrt(1 - rho ** 2)
    return norm.cdf(num / den)


def cdf(u, v, rho):
    u = np.asarray(u, dtype=float)
    v = np.asarray(v, dtype=float)
    if rho == 0.0:
        return u * v
    split = norm.cdf(norm.ppf(u) / rho)
    return integrate_conditional(lambda a, s: hfunc(a, s, rho), u, v, split)


def sample(params, n, rng):
    (rho,) = params
    validate_rho(rho)
    corr_matrix = np.array([[1.0, rho], [rho, 1.0]])
    L = np.linalg.cholesky(corr_matrix)
    z = rng.standard_normal((n, 2))
    mvn_samples = z @ L.T
    uniform_samples = norm.cdf(mvn_samples)
    return uniform_samples[:, 0], uniform_samples[:, 1]


def fit(u, v):
    def nll(rho):
        ll = np.sum(logpdf(u, v, rho))
        if not np.isfinite(ll):
            return 1e10
        return -ll

    res = minimize_scalar(nll, bounds=RHO_BOUNDS, method="bounded", options={"xatol": 1e-8, "maxiter": 500})
    x, loglik = check_optimum(FAMILY, res)
    return (float(x),), loglik


def kendall_tau(rho):
    return 2.0 / np.pi * np.arcsin(rho)


def tail_dependence(rho):
    # Asymptotically independent tails: reported as NA.
    return np.nan, np.nan
