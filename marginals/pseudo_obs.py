"""
Pseudo-observations: paired scores mapped into the open unit square.

Rank mode uses U_i = rank(X_i) / (n + 1) with ties broken at random by a seeded
generator, so each margin is exactly {1/(n+1), ..., n/(n+1)}. Smoothed mode
evaluates externally supplied marginal CDFs and clamps the result away from 0
and 1.
"""
from dataclasses import dataclass

import numpy as np

MIN_OBSERVATIONS = 30
DEFAULT_EPSILON = 1e-6
MODES = ("rank", "smoothed")


class InputInvariantViolation(ValueError):
    """Paired input that cannot be turned into valid pseudo-observations."""


def _as_pair(x, y):
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    if x.ndim != 1 or y.ndim != 1:
        raise InputInvariantViolation("Paired scores must be one-dimensional.")
    if x.shape[0] != y.shape[0]:
        raise InputInvariantViolation(f"Paired scores differ in length: {x.shape[0]} vs {y.shape[0]}.")
    if x.shape[0] < MIN_OBSERVATIONS:
        raise InputInvariantViolation(f"At least {MIN_OBSERVATIONS} pairs are required, got {x.shape[0]}.")
    if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y))):
        raise InputInvariantViolation("Paired scores contain NaN or infinite values.")
    return x, y


@dataclass(frozen=True)
class PseudoObservations:
    u: np.ndarray
    v: np.ndarray
    mode: str = "rank"

    def __post_init__(self):
        u, v = _as_pair(self.u, self.v)
        if np.any((u <= 0.0) | (u >= 1.0)) or np.any((v <= 0.0) | (v >= 1.0)):
            raise InputInvariantViolation("Pseudo-observations must lie strictly inside (0, 1).")
        if self.mode not in MODES:
            raise InputInvariantViolation(f"Unknown pseudo-observation mode: {self.mode!r}.")
        u = u.copy()
        v = v.copy()
        u.setflags(write=False)
        v.setflags(write=False)
        object.__setattr__(self, "u", u)
        object.__setattr__(self, "v", v)

    @property
    def n(self):
        return self.u.shape[0]


def random_ranks(x, rng):
    """
    Ranks 1..n with ties broken uniformly at random.
    """
    n = x.shape[0]
    tie_break = rng.permutation(n)
    order = np.lexsort((tie_break, x))
    ranks = np.empty(n)
    ranks[order] = np.arange(1, n + 1)
    return ranks


def rank_pseudo_obs(x, y, seed=None):
    x, y = _as_pair(x, y)
    rng = np.random.default_rng(seed)
    n = x.shape[0]
    u = random_ranks(x, rng) / (n + 1)
    v = random_ranks(y, rng) / (n + 1)
    return PseudoObservations(u, v, mode="rank")


def smoothed_pseudo_obs(x, y, cdf_x, cdf_y, epsilon=DEFAULT_EPSILON):
    x, y = _as_pair(x, y)
    u = np.clip(np.asarray(cdf_x(x), dtype=float), epsilon, 1 - epsilon)
    v = np.clip(np.asarray(cdf_y(y), dtype=float), epsilon, 1 - epsilon)
    return PseudoObservations(u, v, mode="smoothed")


def make_pseudo_obs(x, y, mode="rank", seed=None, cdf_x=None, cdf_y=None, epsilon=DEFAULT_EPSILON):
    if mode == "rank":
        return rank_pseudo_obs(x, y, seed=seed)
    if mode == "smoothed":
        if cdf_x is None or cdf_y is None:
            raise ValueError("Smoothed pseudo-observations require cdf_x and cdf_y.")
        return smoothed_pseudo_obs(x, y, cdf_x, cdf_y, epsilon=epsilon)
    raise ValueError(f"Unknown pseudo-observation mode: {mode!r}. Expected one of {MODES}.")


def resample(pobs, index, rng):
    """
    Rows `index` of an existing pair, re-ranked in rank mode so the resample
    again has uniform margins.
    """
    u = pobs.u[index]
    v = pobs.v[index]
    if pobs.mode == "rank":
        n = u.shape[0]
        return PseudoObservations(random_ranks(u, rng) / (n + 1), random_ranks(v, rng) / (n + 1), mode="rank")
    return PseudoObservations(u, v, mode=pobs.mode)


def from_sample(u, v, rng):
    """
    Pseudo-observations of a simulated copula sample (always rank based).
    """
    u = np.asarray(u, dtype=float)
    v = np.asarray(v, dtype=float)
    n = u.shape[0]
    return PseudoObservations(random_ranks(u, rng) / (n + 1), random_ranks(v, rng) / (n + 1), mode="rank")
