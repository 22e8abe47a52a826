import numpy as np
from scipy.integrate import quad
from scipy.optimize import minimize_scalar

from copula_families.base import CopulaFamily, check_optimum

FAMILY = CopulaFamily.FRANK
N_PARAMS = 1
ESTIMATION_METHOD = "mle"
THETA_BOUNDS = (-100.0, 100.0)
# Below this magnitude the density is indistinguishable from independence.
THETA_ZERO = 1e-8


def logpdf(u, v, theta):
    """
    Log-pdf of the Frank copula; theta may be negative.
    """
    if abs(theta) < THETA_ZERO:
        return np.zeros(np.shape(u))
    a = np.exp(-theta * u)
    b = np.exp(-theta * v)
    denom = a + b - a * b - np.exp(-theta)
    return (
        np.log(np.abs(theta * np.expm1(-theta)))
        - theta * (u + v)
        - 2.0 * np.log(np.abs(denom))
    )


def cdf(u, v, theta):
    u = np.asarray(u, dtype=float)
    v = np.asarray(v, dtype=float)
    if abs(theta) < THETA_ZERO:
        return u * v
    return -np.log1p(np.expm1(-theta * u) * np.expm1(-theta * v) / np.expm1(-theta)) / theta


def sample(params, n, rng):
    """
    Conditional inversion: draw u, then invert the conditional CDF of V given u.
    """
    (theta,) = params
    u = rng.uniform(size=n)
    w = rng.uniform(size=n)
    if abs(theta) < THETA_ZERO:
        return u, w
    v = -np.log1p(w * np.expm1(-theta) / (w + (1.0 - w) * np.exp(-theta * u))) / theta
    return u, v


def fit(u, v):
    def nll(theta):
        ll = np.sum(logpdf(u, v, theta))
        if not np.isfinite(ll):
            return 1e10
        return -ll

    res = minimize_scalar(nll, bounds=THETA_BOUNDS, method="bounded", options={"xatol": 1e-8, "maxiter": 500})
    x, loglik = check_optimum(FAMILY, res)
    return (float(x),), loglik


def debye1(theta):
    """
    First-order Debye function D1(theta) = (1/theta) * integral_0^theta t / (e^t - 1) dt.
    """
    if abs(theta) < THETA_ZERO:
        return 1.0

    def integrand(t):
        return 1.0 if t == 0.0 else t / np.expm1(t)

    value, _ = quad(integrand, 0.0, theta)
    return value / theta


def kendall_tau(theta):
    if abs(theta) < THETA_ZERO:
        return 0.0
    return 1.0 - 4.0 / theta * (1.0 - debye1(theta))


def tail_dependence(theta):
    return np.nan, np.nan
