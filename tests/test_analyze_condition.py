import numpy as np
import pytest
from scipy.stats import norm

from analysis_config import AnalysisConfig
from analyze_condition import (
    STABILITY_COLUMNS,
    ConditionError,
    analyze_condition,
    analyze_conditions,
    condition_seed,
)
from copula_families.base import CopulaFamily
from copula_families.registry import DEFAULT_FAMILIES

OUTPUT_COLUMNS = [
    "condition_id", "n_pairs", "family", "parameter_1", "parameter_2", "correlation_rho", "degrees_freedom",
    "theta", "loglik", "aic", "bic", "tau", "tail_dep_lower", "tail_dep_upper", "estimation_method",
    "gof_statistic", "gof_pvalue", "gof_pass_0.05", "gof_method", "is_best",
]

FAST = AnalysisConfig(n_bootstrap_gof=0, n_bootstrap_stability=12, min_stability_successes=5)


def scores(seed, n=200, rho=0.6):
    rng = np.random.default_rng(seed)
    prior = rng.normal(500, 50, size=n)
    current = rho * (prior - 500) + np.sqrt(1 - rho ** 2) * rng.normal(0, 50, size=n) + 520
    return np.round(prior), np.round(current)


def test_condition_output_records():
    prior, current = scores(1)
    result = analyze_condition(prior, current, FAST, condition_id="G4_math")
    frame = result.to_frame()
    for column in OUTPUT_COLUMNS + list(STABILITY_COLUMNS):
        assert column in frame.columns, f"missing output column {column}"
    assert list(frame["family"]) == [f.value for f in DEFAULT_FAMILIES]
    assert frame["is_best"].sum() == 1
    assert frame.attrs["best_family"] == result.best_family.value
    best_row = frame[frame["is_best"]].iloc[0]
    assert best_row["aic"] == frame["aic"].min()
    assert best_row["tau_grade"] in ("stable", "marginal", "unstable")
    other = frame[~frame["is_best"]]
    assert other["tau_cv"].isna().all()
    assert (frame["gof_method"].iloc[:-1] == "sn_asymptotic_statistic_only").all()
    assert frame["gof_method"].iloc[-1] == "comonotonic_observed_only"
    assert result.n_pairs == 200
    assert 0.3 < result.empirical_tau < 0.55


def test_stability_family_override_reports_df():
    prior, current = scores(2)
    config = FAST.replace(stability_family="t")
    frame = analyze_condition(prior, current, config, condition_id="c").to_frame()
    t_row = frame.set_index("family").loc["t"]
    assert t_row["df_grade"] in ("stable", "marginal", "unstable", "undefined")
    assert t_row["tau_grade"] is not None


def test_condition_is_reproducible_and_independent_of_batch():
    conditions = {"a": scores(3), "b": scores(4)}
    single = analyze_condition(*conditions["b"], FAST, condition_id="b")
    results, errors = analyze_conditions(conditions, FAST)
    assert not errors
    assert repr(results["b"].fits) == repr(single.fits)
    assert results["b"].stability == single.stability


def test_condition_seed_depends_on_id():
    a = condition_seed(1, "x").generate_state(2)
    b = condition_seed(1, "x").generate_state(2)
    c = condition_seed(1, "y").generate_state(2)
    assert np.array_equal(a, b)
    assert not np.array_equal(a, c)


def test_invalid_condition_raises_condition_error():
    with pytest.raises(ConditionError) as err:
        analyze_condition(np.arange(10.0), np.arange(10.0), FAST, condition_id="tiny")
    assert err.value.condition_id == "tiny"
    assert "tiny" in str(err.value)


def test_batch_collects_failures_and_continues():
    conditions = {"ok": scores(5), "short": (np.arange(5.0), np.arange(5.0))}
    results, errors = analyze_conditions(conditions, FAST.replace(n_bootstrap_stability=0))
    assert set(results) == {"ok"}
    assert set(errors) == {"short"}
    assert results["ok"].stability is None


PRIOR_CDF = norm(500, 50).cdf
CURRENT_CDF = norm(520, 50).cdf
SMOOTHED = FAST.replace(pseudo_obs_mode="smoothed")


def test_smoothed_condition_uses_supplied_cdfs():
    """
    Smoothed mode evaluates the caller's marginal CDFs instead of ranking.
    """
    prior, current = scores(6)
    result = analyze_condition(
        prior, current, SMOOTHED, condition_id="smooth", cdf_prior=PRIOR_CDF, cdf_current=CURRENT_CDF
    )
    frame = result.to_frame()
    assert frame["is_best"].sum() == 1
    assert result.stability is not None and result.stability.status == "ok"
    assert 0.3 < result.empirical_tau < 0.55


def test_smoothed_condition_without_cdfs_is_a_condition_error():
    prior, current = scores(7)
    with pytest.raises(ConditionError) as err:
        analyze_condition(prior, current, SMOOTHED, condition_id="no_cdf")
    assert err.value.condition_id == "no_cdf"
    assert "cdf" in str(err.value)


def test_smoothed_batch_reports_errors_per_condition():
    """
    A condition missing its CDFs fails on its own; the others still run.
    """
    prior, current = scores(8)
    conditions = {
        "with_cdfs": (prior, current, PRIOR_CDF, CURRENT_CDF),
        "without_cdfs": scores(9),
    }
    results, errors = analyze_conditions(conditions, SMOOTHED.replace(n_bootstrap_stability=0))
    assert set(results) == {"with_cdfs"}, "condition with CDFs should succeed"
    assert set(errors) == {"without_cdfs"}
    assert isinstance(errors["without_cdfs"], ConditionError)
    assert errors["without_cdfs"].condition_id == "without_cdfs"


def test_batch_rejects_malformed_condition_inputs():
    with pytest.raises(ValueError):
        analyze_conditions({"bad": (np.arange(40.0),)}, FAST)


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("COPULA_FAMILIES", "gaussian, t,frank")
    monkeypatch.setenv("N_BOOTSTRAP_GOF", "0")
    monkeypatch.setenv("N_BOOTSTRAP_STABILITY", "25")
    monkeypatch.setenv("COPULA_SEED", "7")
    config = AnalysisConfig.from_env(n_jobs=2)
    assert config.families == (CopulaFamily.GAUSSIAN, CopulaFamily.STUDENT_T, CopulaFamily.FRANK)
    assert config.n_bootstrap_gof == 0
    assert config.n_bootstrap_stability == 25
    assert config.seed == 7
    assert config.n_jobs == 2


@pytest.mark.parametrize(
    "changes",
    [{"families": ()}, {"pseudo_obs_mode": "spline"}, {"n_bootstrap_gof": -1}, {"epsilon": 0.7}, {"families": ("joe",)}],
)
def test_config_validation(changes):
    with pytest.raises(ValueError):
        AnalysisConfig(**changes)
