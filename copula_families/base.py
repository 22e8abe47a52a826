from enum import Enum

import numpy as np

# Gauss-Legendre rule used to integrate conditional distributions on each panel.
GL_NODES, GL_WEIGHTS = np.polynomial.legendre.leggauss(32)


class CopulaFamily(str, Enum):
    GAUSSIAN = "gaussian"
    STUDENT_T = "t"
    CLAYTON = "clayton"
    GUMBEL = "gumbel"
    FRANK = "frank"
    COMONOTONIC = "comonotonic"

    def __str__(self):
        return self.value


class FitFailure(RuntimeError):
    """A family's optimizer did not converge or left the parameter domain."""

    def __init__(self, family, reason):
        super().__init__(family, reason)
        self.family = family
        self.reason = reason

    def __str__(self):
        return f"{self.family} copula fit failed: {self.reason}"


def check_optimum(family, res):
    """
    Validate an optimizer result and return (x, loglik).

    Parameters:
        family: CopulaFamily being fitted.
        res: scipy OptimizeResult of a negative log-likelihood minimisation.

    Returns:
        Tuple of the optimum and the (positive) log-likelihood there.
    """
    if not res.success:
        raise FitFailure(family, res.message)
    if not np.isfinite(res.fun) or not np.all(np.isfinite(res.x)):
        raise FitFailure(family, "non-finite likelihood at optimum")
    return res.x, -float(res.fun)


def integrate_conditional(hfunc, u, v, split):
    """
    C(u, v) = integral over s in (0, v) of h(u | s), where h is the conditional
    CDF of U given V = s.

    The integrand moves from ~0 to ~1 around `split`, so each side is
    integrated on its own panel.
    """
    u = np.asarray(u, dtype=float)
    v = np.asarray(v, dtype=float)
    split = np.clip(split, 0.0, v)
    total = np.zeros_like(u)
    for a, b in ((np.zeros_like(v), split), (split, v)):
        half = 0.5 * (b - a)
        mid = 0.5 * (b + a)
        s = mid[:, None] + half[:, None] * GL_NODES[None, :]
        s = np.clip(s, 1e-300, 1.0 - 1e-16)
        total += half * (hfunc(u[:, None], s) @ GL_WEIGHTS)
    return np.clip(total, 0.0, np.minimum(u, v))
