import numpy as np
from scipy.optimize import minimize_scalar

from copula_families.base import CopulaFamily, check_optimum

FAMILY = CopulaFamily.CLAYTON
N_PARAMS = 1
ESTIMATION_METHOD = "mle"
THETA_BOUNDS = (1e-4, 100.0)


def _log_generator_sum(u, v, theta):
    """
    log(u^-theta + v^-theta - 1), evaluated without overflow for large theta.
    """
    a = -theta * np.log(np.minimum(u, v))
    b = -theta * np.log(np.maximum(u, v))
    return a + np.log1p(np.exp(b - a) - np.exp(-a))


def logpdf(u, v, theta):
    """
    Log-pdf of the bivariate Clayton copula (theta > 0).
    """
    if theta <= 0:
        return np.full(np.shape(u), -np.inf)
    term = np.log(u) + np.log(v)
    s = _log_generator_sum(u, v, theta)
    return np.log1p(theta) - (theta + 1.0) * term - (2.0 + 1.0 / theta) * s


def cdf(u, v, theta):
    return np.exp(-_log_generator_sum(np.asarray(u, dtype=float), np.asarray(v, dtype=float), theta) / theta)


def sample(params, n, rng):
    # Marshall-Olkin: gamma frailty with shape 1/theta.
    (theta,) = params
    frailty = rng.gamma(1.0 / theta, size=n)
    e = rng.exponential(size=(n, 2))
    with np.errstate(divide="ignore", over="ignore"):
        uniforms = np.exp(-np.log1p(e / frailty[:, None]) / theta)
    return uniforms[:, 0], uniforms[:, 1]


def fit(u, v):
    def nll(theta):
        ll = np.sum(logpdf(u, v, theta))
        if not np.isfinite(ll):
            return 1e10
        return -ll

    res = minimize_scalar(nll, bounds=THETA_BOUNDS, method="bounded", options={"xatol": 1e-8, "maxiter": 500})
    x, loglik = check_optimum(FAMILY, res)
    return (float(x),), loglik


def kendall_tau(theta):
    return theta / (theta + 2.0)


def tail_dependence(theta):
    return float(2.0 ** (-1.0 / theta)), 0.0
