import numpy as np
import pytest

from copula_families.registry import family_module
from marginals.pseudo_obs import rank_pseudo_obs


def draw_pobs(family, params, n, seed):
    rng = np.random.default_rng(seed)
    u, v = family_module(family).sample(params, n, rng)
    return rank_pseudo_obs(u, v, seed=seed)


@pytest.fixture
def copula_pobs():
    """Factory: rank pseudo-observations of a sample from a given copula."""
    return draw_pobs


@pytest.fixture
def clayton_pobs():
    return draw_pobs("clayton", (2.0,), 300, 11)


@pytest.fixture
def gaussian_pobs():
    return draw_pobs("gaussian", (0.5,), 300, 12)
