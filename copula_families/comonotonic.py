"""
Comonotonic copula C(u, v) = min(u, v): perfect positive dependence.

There is nothing to estimate. The copula has no density, so fits are scored with
a pseudo-log-likelihood that treats the deviations u - v as N(0, h^2) noise
around the diagonal, with a fixed bandwidth h. The pseudo-log-likelihood is
strictly decreasing in the mean squared deviation and is maximal when u == v.
"""
import numpy as np

from copula_families.base import CopulaFamily

FAMILY = CopulaFamily.COMONOTONIC
N_PARAMS = 0
ESTIMATION_METHOD = "deterministic"
BANDWIDTH = 1e-4


def mean_squared_deviation(u, v):
    return float(np.mean((np.asarray(u) - np.asarray(v)) ** 2))


def logpdf(u, v, bandwidth=BANDWIDTH):
    """Per-observation N(0, h^2) score of the deviation u - v."""
    d = np.asarray(u) - np.asarray(v)
    return -0.5 * np.log(2.0 * np.pi * bandwidth ** 2) - d ** 2 / (2.0 * bandwidth ** 2)


def pseudo_loglik(u, v, bandwidth=BANDWIDTH):
    # Equals -n/2 log(2 pi h^2) - n * msd / (2 h^2).
    return float(np.sum(logpdf(u, v, bandwidth)))


def cdf(u, v):
    return np.minimum(u, v)


def sample(params, n, rng):
    u = rng.uniform(size=n)
    return u, u.copy()


def fit(u, v):
    return (), float(pseudo_loglik(u, v))


def kendall_tau():
    return 1.0


def tail_dependence():
    return 1.0, 1.0
