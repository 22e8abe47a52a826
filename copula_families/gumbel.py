import numpy as np
from scipy.optimize import minimize_scalar

from copula_families.base import CopulaFamily, check_optimum

FAMILY = CopulaFamily.GUMBEL
N_PARAMS = 1
ESTIMATION_METHOD = "mle"
THETA_BOUNDS = (1.0, 100.0)


def _log_s(x, y, theta):
    # log(x^theta + y^theta) for x = -log u, y = -log v
    return np.logaddexp(theta * np.log(x), theta * np.log(y))


def logpdf(u, v, theta):
    """
    Log-pdf of the bivariate Gumbel copula (theta >= 1).
    """
    if theta < 1.0:
        return np.full(np.shape(u), -np.inf)
    x = -np.log(u)
    y = -np.log(v)
    log_s = _log_s(x, y, theta)
    a = np.exp(log_s / theta)
    log_c = -a
    log_c -= np.log(u) + np.log(v)
    log_c += (theta - 1.0) * (np.log(x) + np.log(y))
    log_c += (1.0 / theta - 2.0) * log_s
    log_c += np.log(a + theta - 1.0)
    return log_c


def cdf(u, v, theta):
    x = -np.log(np.asarray(u, dtype=float))
    y = -np.log(np.asarray(v, dtype=float))
    return np.exp(-np.exp(_log_s(x, y, theta) / theta))


def sample(params, n, rng):
    """
    Marshall-Olkin sampling with a positive stable frailty (Chambers-Mallows-Stuck).
    """
    (theta,) = params
    alpha = 1.0 / theta
    w = rng.uniform(0.0, np.pi, size=n)
    e = rng.exponential(size=n)
    frailty = (
        np.sin(alpha * w) / np.sin(w) ** (1.0 / alpha)
        * (np.sin((1.0 - alpha) * w) / e) ** ((1.0 - alpha) / alpha)
    )
    x = rng.exponential(size=(n, 2))
    uniforms = np.exp(-(x / frailty[:, None]) ** alpha)
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
    return 1.0 - 1.0 / theta


def tail_dependence(theta):
    return 0.0, float(2.0 - 2.0 ** (1.0 / theta))
