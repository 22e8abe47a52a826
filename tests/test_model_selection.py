import pytest

from copula_families.base import CopulaFamily
from copula_fit import build_fit, select_best_family


def make_fits(logliks):
    return {family: build_fit(family, params, ll, 200) for family, params, ll in logliks}


def test_selects_minimum_aic():
    fits = make_fits(
        [
            (CopulaFamily.GAUSSIAN, (0.5,), -10.0),
            (CopulaFamily.STUDENT_T, (0.5, 6.0), -4.0),
            (CopulaFamily.CLAYTON, (1.0,), -9.0),
            (CopulaFamily.COMONOTONIC, (), -500.0),
        ]
    )
    best = select_best_family(fits)
    assert best == CopulaFamily.STUDENT_T
    assert all(fits[best].aic <= fit.aic for fit in fits.values())


def test_parameter_penalty_can_change_winner():
    """
    Equal likelihood: the one-parameter family wins over the two-parameter one.
    """
    fits = make_fits([(CopulaFamily.STUDENT_T, (0.5, 6.0), 20.0), (CopulaFamily.GAUSSIAN, (0.5,), 20.0)])
    assert select_best_family(fits) == CopulaFamily.GAUSSIAN


def test_ties_go_to_first_family():
    fits = make_fits([(CopulaFamily.CLAYTON, (1.0,), 5.0), (CopulaFamily.GUMBEL, (1.5,), 5.0)])
    assert select_best_family(fits) == CopulaFamily.CLAYTON


def test_empty_input_raises():
    with pytest.raises(ValueError):
        select_best_family({})
