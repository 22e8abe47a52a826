import numpy as np
import pytest
from scipy.stats import norm

from marginals.pseudo_obs import (
    InputInvariantViolation,
    PseudoObservations,
    make_pseudo_obs,
    rank_pseudo_obs,
    resample,
    smoothed_pseudo_obs,
)


def test_rank_margins_are_exact_grid_even_with_ties():
    """
    Random tie-breaking must still give each margin exactly {1..n}/(n+1).
    """
    rng = np.random.default_rng(0)
    x = rng.integers(0, 5, size=200).astype(float)
    y = rng.integers(0, 3, size=200).astype(float)
    pobs = rank_pseudo_obs(x, y, seed=1)
    grid = np.arange(1, 201) / 201
    assert np.array_equal(np.sort(pobs.u), grid), "u margin is not the rank grid"
    assert np.array_equal(np.sort(pobs.v), grid), "v margin is not the rank grid"


def test_rank_order_preserved_between_distinct_values():
    rng = np.random.default_rng(1)
    x = rng.integers(0, 10, size=100).astype(float)
    pobs = rank_pseudo_obs(x, rng.normal(size=100), seed=2)
    lo, hi = x < 5, x >= 5
    assert pobs.u[lo].max() < pobs.u[hi].min()


def test_tie_breaking_is_seeded():
    x = np.repeat(np.arange(10.0), 5)
    y = np.tile(np.arange(5.0), 10)
    a = rank_pseudo_obs(x, y, seed=7)
    b = rank_pseudo_obs(x, y, seed=7)
    c = rank_pseudo_obs(x, y, seed=8)
    assert np.array_equal(a.u, b.u) and np.array_equal(a.v, b.v)
    assert not np.array_equal(a.u, c.u), "different seeds should break ties differently"


@pytest.mark.parametrize(
    "x, y",
    [
        (np.arange(29.0), np.arange(29.0)),
        (np.arange(40.0), np.arange(41.0)),
        (np.r_[np.arange(39.0), np.nan], np.arange(40.0)),
        (np.ones((40, 2)), np.ones((40, 2))),
    ],
)
def test_invalid_inputs_raise(x, y):
    with pytest.raises(InputInvariantViolation):
        rank_pseudo_obs(x, y)


def test_invariant_violation_is_value_error():
    assert issubclass(InputInvariantViolation, ValueError)


def test_pseudo_observations_reject_boundary_values():
    u = np.linspace(0.01, 0.99, 40)
    with pytest.raises(InputInvariantViolation):
        PseudoObservations(np.r_[u[:-1], 1.0], u)
    with pytest.raises(InputInvariantViolation):
        PseudoObservations(u, u, mode="spline")


def test_pseudo_observations_are_read_only():
    u = np.linspace(0.01, 0.99, 40)
    pobs = PseudoObservations(u, u[::-1])
    with pytest.raises(ValueError):
        pobs.u[0] = 0.5
    u[0] = 0.5
    assert pobs.u[0] == pytest.approx(0.01), "pseudo-observations must not alias the caller's array"


def test_smoothed_mode_clamps_to_epsilon():
    x = np.linspace(-10, 10, 50)
    pobs = smoothed_pseudo_obs(x, x, norm.cdf, norm.cdf, epsilon=1e-3)
    assert pobs.mode == "smoothed"
    assert pobs.u.min() == pytest.approx(1e-3)
    assert pobs.u.max() == pytest.approx(1 - 1e-3)


def test_smoothed_mode_requires_cdfs():
    x = np.arange(40.0)
    with pytest.raises(ValueError):
        make_pseudo_obs(x, x, mode="smoothed")
    with pytest.raises(ValueError):
        make_pseudo_obs(x, x, mode="kernel")


def test_resample_reranks_rank_mode():
    rng = np.random.default_rng(3)
    x = rng.normal(size=60)
    pobs = rank_pseudo_obs(x, x + rng.normal(size=60), seed=3)
    index = rng.integers(0, 60, size=60)
    boot = resample(pobs, index, np.random.default_rng(4))
    assert np.array_equal(np.sort(boot.u), np.arange(1, 61) / 61), "resample margins are not the rank grid"
    orig = pobs.u[index]
    i, j = np.nonzero(orig[:, None] < orig[None, :])
    assert np.all(boot.u[i] < boot.u[j]), "re-ranking changed the order of distinct values"


def test_resample_keeps_smoothed_values():
    rng = np.random.default_rng(5)
    x = rng.normal(size=60)
    pobs = smoothed_pseudo_obs(x, x + rng.normal(size=60), norm.cdf, norm(0, np.sqrt(2)).cdf)
    index = rng.integers(0, 60, size=60)
    boot = resample(pobs, index, np.random.default_rng(6))
    assert boot.mode == "smoothed"
    assert np.array_equal(boot.u, pobs.u[index]) and np.array_equal(boot.v, pobs.v[index])
