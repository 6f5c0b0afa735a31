"""Tests for likelihood objective and MLE estimation."""

from __future__ import annotations

import math

import numpy as np
import pandas as pd
import pytest

from mlekit.estimation import (
    MAPResult,
    MLEResult,
    build_objective,
    compute_hessian,
    covariance_from_hessian,
    estimate_map,
    estimate_mle,
    estimate_rate,
    maximize_loglik,
)
from mlekit.estimation import mle as mle_module
from mlekit.estimation.mle import Z_95, ColumnScaling
from mlekit.exceptions import ConfigurationError, NumericalInstabilityError
from mlekit.likelihood import poisson_loglik
from mlekit.model import CountData, PriorSpec

TRUE_POISSON = np.array([1.0, 0.5, -0.3])
TRUE_MNL = np.array([1.0, 0.5, -0.8, -0.1])
REGIONS = ["Midwest", "Northeast", "Northwest", "South", "Southwest"]


@pytest.fixture
def patent_data():
    """Firm-level patent counts with an unscaled age and age^2 design."""
    rng = np.random.default_rng(42)
    n = 1500
    age = rng.uniform(9.0, 49.0, n)
    region = rng.choice(REGIONS, n)
    iscustomer = rng.integers(0, 2, n).astype(float)
    eta = -0.5 + 0.15 * age - 0.003 * age**2 + 0.05 * (region == "Northeast") + 0.2 * iscustomer
    frame = pd.DataFrame(
        {
            "patents": rng.poisson(np.exp(eta)),
            "age": age,
            "region": region,
            "iscustomer": iscustomer,
        }
    )
    return CountData.from_frame(
        frame, "patents", ["age", "region", "iscustomer"], categorical=["region"], squared=["age"]
    )


def _poisson_newton(X, y, n_iter=100):
    """Damped Newton (IRLS) reference fit for a Poisson regression."""
    beta = np.zeros(X.shape[1])
    beta[0] = np.log(y.mean())
    current = poisson_loglik(beta, X, y)
    for _ in range(n_iter):
        lam = np.exp(X @ beta)
        step = np.linalg.solve(X.T @ (lam[:, None] * X), X.T @ (y - lam))
        t = 1.0
        while poisson_loglik(beta + t * step, X, y) < current and t > 1e-8:
            t *= 0.5
        beta = beta + t * step
        current = poisson_loglik(beta, X, y)
        if np.max(np.abs(t * step)) < 1e-12:
            break
    return beta


def _inverse_fisher_se(X, beta):
    lam = np.exp(X @ beta)
    info = X.T @ (lam[:, None] * X)
    d = 1.0 / np.sqrt(np.diag(info))
    cov = d[:, None] * np.linalg.inv(d[:, None] * info * d[None, :]) * d[None, :]
    return np.sqrt(np.diag(cov))


# ---------------------------------------------------------------------------
# build_objective
# ---------------------------------------------------------------------------


class TestBuildObjective:
    def test_returns_negative_loglik(self, count_data):
        obj = build_objective(count_data)
        beta = np.array([0.9, 0.4, -0.2])
        assert obj(beta) == pytest.approx(-poisson_loglik(beta, count_data.X, count_data.y))

    def test_true_params_better_than_wrong(self, count_data):
        obj = build_objective(count_data)
        assert obj(TRUE_POISSON) < obj(np.zeros(3))

    def test_family_inferred_from_data(self, count_data, choice_data):
        assert build_objective(count_data).family.name == "poisson"
        assert build_objective(choice_data).family.name == "mnl"

    def test_family_mismatch_raises(self, count_data):
        with pytest.raises(ConfigurationError, match="requires ChoiceData"):
            build_objective(count_data, "mnl")

    def test_unknown_family_raises(self, count_data):
        with pytest.raises(ConfigurationError, match="Unknown model family"):
            build_objective(count_data, "probit")

    def test_wrong_theta_length_raises(self, count_data):
        obj = build_objective(count_data)
        with pytest.raises(ConfigurationError, match="Expected theta with length 3"):
            obj(np.zeros(2))

    def test_non_finite_theta_returns_inf(self, count_data):
        obj = build_objective(count_data)
        assert obj(np.array([np.nan, 0.0, 0.0])) == np.inf

    def test_penalty_replaces_inf(self, count_data):
        obj = build_objective(count_data, penalty=1e10)
        assert obj(np.array([1000.0, 0.0, 0.0])) == 1e10

    def test_cache_hits(self, count_data):
        obj = build_objective(count_data, cache=True, cache_max_size=2)
        theta = np.array([0.5, 0.1, 0.0])
        obj(theta)
        obj(theta)
        info = obj.cache_info()
        assert info["hits"] == 1
        assert info["misses"] == 1

        obj(theta + 1.0)
        obj(theta + 2.0)
        assert obj.cache_info()["size"] == 2

        obj.cache_clear()
        assert obj.cache_info() == {"enabled": 1, "hits": 0, "misses": 0, "size": 0, "max_size": 2}

    def test_cache_disabled(self, count_data):
        obj = build_objective(count_data, cache=False)
        obj(np.zeros(3))
        assert obj.cache_info()["enabled"] == 0


# ---------------------------------------------------------------------------
# Hessian helpers
# ---------------------------------------------------------------------------


class TestHessian:
    def test_gradient_and_objective_routes_agree(self, count_data):
        obj = build_objective(count_data)
        theta = np.array([0.95, 0.5, -0.3])
        H_grad = compute_hessian(obj, theta, eps=1e-5, gradient=obj.gradient)
        H_obj = compute_hessian(obj, theta, eps=1e-4)
        np.testing.assert_allclose(H_grad, H_obj, rtol=1e-3)

    def test_poisson_hessian_is_fisher_information(self, count_data):
        obj = build_objective(count_data)
        theta = np.array([0.95, 0.5, -0.3])
        lam = np.exp(count_data.X @ theta)
        expected = count_data.X.T @ (lam[:, None] * count_data.X)
        H = compute_hessian(obj, theta, eps=1e-5, gradient=obj.gradient)
        np.testing.assert_allclose(H, expected, rtol=1e-6, atol=1e-6)

    def test_invalid_eps_raises(self, count_data):
        obj = build_objective(count_data)
        with pytest.raises(ConfigurationError, match="eps"):
            compute_hessian(obj, np.zeros(3), eps=0.0)

    def test_singular_matrix_raises(self):
        with pytest.raises(NumericalInstabilityError, match="singular"):
            covariance_from_hessian(np.array([[1.0, 1.0], [1.0, 1.0]]))

    def test_indefinite_matrix_raises(self):
        with pytest.raises(NumericalInstabilityError, match="positive definite"):
            covariance_from_hessian(np.array([[1.0, 0.0], [0.0, -1.0]]))

    def test_non_finite_matrix_raises(self):
        with pytest.raises(NumericalInstabilityError, match="non-finite"):
            covariance_from_hessian(np.array([[np.nan, 0.0], [0.0, 1.0]]))

    def test_ridge_is_opt_in(self):
        H = np.array([[1.0, 1.0], [1.0, 1.0]])
        cov = covariance_from_hessian(H, ridge=0.5)
        np.testing.assert_allclose(cov, np.linalg.inv(H + 0.5 * np.eye(2)))

    def test_negative_ridge_raises(self):
        with pytest.raises(ConfigurationError, match="ridge"):
            covariance_from_hessian(np.eye(2), ridge=-1.0)


# ---------------------------------------------------------------------------
# estimate_rate
# ---------------------------------------------------------------------------


class TestEstimateRate:
    def test_rate_is_sample_mean(self):
        result = estimate_rate([1, 3, 5])
        assert result.success
        assert result.rate == pytest.approx(3.0, abs=1e-5)
        # Fisher information n / lambda gives se = sqrt(3 / 3)
        assert result.std_error == pytest.approx(1.0, rel=1e-3)
        lo, hi = result.conf_int
        assert lo == pytest.approx(result.rate - Z_95 * result.std_error)
        assert hi == pytest.approx(result.rate + Z_95 * result.std_error)

    def test_log_likelihood_at_estimate(self):
        result = estimate_rate([0, 1, 2], bounds=(0.001, 10.0))
        assert result.rate == pytest.approx(1.0, abs=1e-5)
        assert result.log_likelihood == pytest.approx(-3.0 - math.log(2.0), abs=1e-8)

    def test_estimate_clipped_to_bounds(self):
        result = estimate_rate([40, 50, 60], bounds=(0.001, 10.0), xatol=1e-10)
        assert result.rate == pytest.approx(10.0, abs=1e-4)

    def test_summary(self):
        text = estimate_rate([2, 2, 3, 1]).summary()
        assert "Poisson Rate" in text
        assert "95% CI" in text

    @pytest.mark.parametrize("y", [[], [-1, 2], [1.0, np.nan]])
    def test_invalid_counts_raise(self, y):
        with pytest.raises(ConfigurationError):
            estimate_rate(y)

    def test_invalid_bounds_raise(self):
        with pytest.raises(ConfigurationError, match="bounds"):
            estimate_rate([1, 2], bounds=(5.0, 1.0))


# ---------------------------------------------------------------------------
# estimate_mle
# ---------------------------------------------------------------------------


class TestEstimateMLE:
    def test_returns_mle_result(self, count_data):
        result = estimate_mle(count_data)
        assert isinstance(result, MLEResult)
        assert result.success
        assert result.family == "poisson"
        assert result.n_params == 3
        assert result.n_obs == 500

    def test_intercept_only_matches_log_mean(self, count_frame):
        data = CountData(np.ones((len(count_frame), 1)), count_frame["y"], ["intercept"])
        result = estimate_mle(data)
        mean = float(count_frame["y"].mean())
        assert math.exp(result.estimate[0]) == pytest.approx(mean, rel=1e-4)
        # delta method: se(log mean) = 1 / sqrt(sum(y))
        assert result.std_errors[0] == pytest.approx(
            1.0 / math.sqrt(count_frame["y"].sum()), rel=1e-3
        )

    def test_recovers_poisson_coefficients(self, count_data):
        result = estimate_mle(count_data)
        assert np.all(np.abs(result.estimate - TRUE_POISSON) < 4.0 * result.std_errors)
        np.testing.assert_allclose(result.estimate, TRUE_POISSON, atol=0.15)

    def test_recovers_mnl_coefficients(self, choice_data):
        result = estimate_mle(choice_data)
        assert result.success
        assert result.family == "mnl"
        assert result.n_obs == choice_data.n_tasks
        assert np.all(np.abs(result.estimate - TRUE_MNL) < 4.0 * result.std_errors)

    def test_score_is_zero_at_optimum(self, count_data):
        result = estimate_mle(count_data)
        obj = build_objective(count_data)
        grad = obj.gradient(result.estimate)
        assert np.max(np.abs(grad)) < 1e-3

    def test_multi_start_agreement(self, count_data):
        a = estimate_mle(count_data)
        b = estimate_mle(count_data, x0=[0.5, 1.0, 0.5])
        c = estimate_mle(count_data, n_restarts=3, seed=0)
        np.testing.assert_allclose(a.estimate, b.estimate, atol=1e-4)
        np.testing.assert_allclose(a.estimate, c.estimate, atol=1e-4)
        assert a.log_likelihood == pytest.approx(b.log_likelihood, abs=1e-6)

    def test_x0_mapping(self, count_data):
        result = estimate_mle(count_data, x0={"intercept": 1.0})
        np.testing.assert_allclose(result.estimate, estimate_mle(count_data).estimate, atol=1e-4)

    def test_x0_length_mismatch_raises(self, count_data):
        with pytest.raises(ConfigurationError, match="must match"):
            estimate_mle(count_data, x0=[0.0, 0.0])

    def test_family_mismatch_raises(self, choice_data):
        with pytest.raises(ConfigurationError):
            estimate_mle(choice_data, family="poisson")

    def test_wald_interval(self, count_data):
        result = estimate_mle(count_data)
        np.testing.assert_allclose(result.conf_int[:, 0], result.estimate - Z_95 * result.std_errors)
        np.testing.assert_allclose(result.conf_int[:, 1], result.estimate + Z_95 * result.std_errors)

    def test_standard_errors_match_inverse_fisher(self, count_data):
        result = estimate_mle(count_data)
        lam = np.exp(count_data.X @ result.estimate)
        info = count_data.X.T @ (lam[:, None] * count_data.X)
        expected = np.sqrt(np.diag(np.linalg.inv(info)))
        np.testing.assert_allclose(result.std_errors, expected, rtol=1e-4)

    def test_objective_hessian_route(self, count_data):
        a = estimate_mle(count_data)
        b = estimate_mle(count_data, hessian="objective")
        np.testing.assert_allclose(a.std_errors, b.std_errors, rtol=1e-3)

    def test_invalid_hessian_route_raises(self, count_data):
        with pytest.raises(ConfigurationError, match="hessian"):
            estimate_mle(count_data, hessian="bfgs")

    def test_zero_variance_column_raises(self, count_data):
        X = np.column_stack((count_data.X, np.zeros(count_data.n_obs)))
        data = CountData(X, count_data.y, [*count_data.param_names, "region_X"])
        with pytest.raises(NumericalInstabilityError):
            estimate_mle(data)

    def test_zero_variance_column_without_se(self, count_data):
        X = np.column_stack((count_data.X, np.zeros(count_data.n_obs)))
        data = CountData(X, count_data.y)
        result = estimate_mle(data, compute_se=False)
        assert result.std_errors is None
        assert result.conf_int is None
        assert result.estimate[-1] == 0.0

    def test_information_criteria(self, count_data):
        result = estimate_mle(count_data)
        assert result.aic == pytest.approx(-2.0 * result.log_likelihood + 6.0)
        assert result.bic == pytest.approx(-2.0 * result.log_likelihood + 3.0 * math.log(500))

    def test_mnl_bic_counts_tasks(self, choice_data):
        result = estimate_mle(choice_data)
        assert result.bic == pytest.approx(
            -2.0 * result.log_likelihood + 4.0 * math.log(choice_data.n_tasks)
        )

    def test_to_frame(self, count_data):
        table = estimate_mle(count_data).to_frame()
        assert list(table.index) == ["intercept", "x1", "x2"]
        assert table.index.name == "parameter"
        assert list(table.columns) == ["estimate", "std_error", "z", "p_value", "ci_lower", "ci_upper"]
        assert np.all((table["p_value"] >= 0.0) & (table["p_value"] <= 1.0))

    def test_summary(self, count_data):
        text = estimate_mle(count_data).summary()
        assert "Maximum Likelihood Estimation" in text
        assert "intercept" in text
        assert "x2" in text

    def test_predict(self, count_data, choice_data):
        rates = estimate_mle(count_data).predict(count_data)
        assert rates.shape == (500,)
        assert np.all(rates > 0.0)
        assert rates.sum() == pytest.approx(count_data.y.sum(), rel=1e-4)

        probs = estimate_mle(choice_data).predict(choice_data)
        assert probs.shape == (choice_data.n_obs,)
        assert probs.sum() == pytest.approx(choice_data.n_tasks)

    def test_unscaled_quadratic_design(self, patent_data):
        X, y = patent_data.X, patent_data.y
        result = estimate_mle(patent_data)
        reference = _poisson_newton(X, y)

        assert result.n_iterations > 0
        np.testing.assert_allclose(result.estimate, reference, rtol=1e-4, atol=1e-6)
        assert result.log_likelihood == pytest.approx(poisson_loglik(reference, X, y), abs=1e-6)

        score = build_objective(patent_data).gradient(result.estimate)
        scale = np.abs(X).T @ (y + np.exp(X @ result.estimate))
        assert np.max(np.abs(score) / scale) < 1e-6

        assert result.std_errors is not None
        np.testing.assert_allclose(result.std_errors, _inverse_fisher_se(X, reference), rtol=1e-3)

    def test_standard_errors_when_optimizer_reports_precision_loss(self, count_data, monkeypatch):
        reference = estimate_mle(count_data)
        real_minimize = mle_module.optimize.minimize

        def precision_loss_minimize(*args, **kwargs):
            result = real_minimize(*args, **kwargs)
            result.success = False
            result.message = "Desired error not necessarily achieved due to precision loss."
            return result

        monkeypatch.setattr(mle_module.optimize, "minimize", precision_loss_minimize)
        result = estimate_mle(count_data)

        assert not result.success
        assert "precision loss" in result.message
        np.testing.assert_allclose(result.estimate, reference.estimate)
        np.testing.assert_allclose(result.std_errors, reference.std_errors, rtol=1e-8)

    def test_no_standard_errors_away_from_optimum(self, count_data):
        result = estimate_mle(count_data, options={"maxiter": 1})
        assert not result.success
        assert result.std_errors is None
        assert result.conf_int is None


# ---------------------------------------------------------------------------
# ColumnScaling
# ---------------------------------------------------------------------------


class TestColumnScaling:
    def test_linear_predictor_matches_standardised_design(self, patent_data):
        X = patent_data.X
        scaling = ColumnScaling.from_design(X)
        Z = X.copy()
        Z[:, 1:] = (X[:, 1:] - X[:, 1:].mean(axis=0)) / X[:, 1:].std(axis=0)
        gamma = np.linspace(-0.5, 0.5, X.shape[1])
        np.testing.assert_allclose(X @ scaling.to_beta(gamma), Z @ gamma, atol=1e-9)
        np.testing.assert_allclose(scaling.to_gamma(scaling.to_beta(gamma)), gamma, atol=1e-12)

    def test_constant_and_zero_columns_untouched(self):
        x = np.linspace(0.0, 10.0, 20)
        X = np.column_stack((np.ones(20), x, np.zeros(20)))
        T = ColumnScaling.from_design(X).transform
        np.testing.assert_array_equal(T[:, 2], [0.0, 0.0, 1.0])
        np.testing.assert_array_equal(T[2, :], [0.0, 0.0, 1.0])
        assert T[1, 1] == pytest.approx(1.0 / x.std())
        assert T[0, 1] == pytest.approx(-x.mean() / x.std())

    def test_without_intercept_columns_are_only_scaled(self, choice_data):
        T = ColumnScaling.from_design(choice_data.X).transform
        np.testing.assert_allclose(T, np.diag(1.0 / choice_data.X.std(axis=0)))

    def test_hessian_and_covariance_map_back(self):
        rng = np.random.default_rng(0)
        X = np.column_stack((np.ones(50), rng.uniform(10.0, 50.0, 50)))
        scaling = ColumnScaling.from_design(X)
        H_beta = X.T @ X
        H_gamma = scaling.transform.T @ H_beta @ scaling.transform
        np.testing.assert_allclose(scaling.hessian_to_beta(H_gamma), H_beta, rtol=1e-10)
        np.testing.assert_allclose(
            scaling.covariance_to_beta(np.linalg.inv(H_gamma)), np.linalg.inv(H_beta), rtol=1e-8
        )


# ---------------------------------------------------------------------------
# maximize_loglik
# ---------------------------------------------------------------------------


class TestMaximizeLoglik:
    def test_generic_contract_matches_estimate_mle(self, count_data):
        beta_hat, se, converged = maximize_loglik(
            poisson_loglik, count_data.X, count_data.y, np.zeros(3)
        )
        reference = estimate_mle(count_data)
        assert isinstance(converged, bool)
        np.testing.assert_allclose(beta_hat, reference.estimate, atol=1e-3)
        np.testing.assert_allclose(se, reference.std_errors, rtol=2e-2)

    def test_beta0_length_mismatch_raises(self, count_data):
        with pytest.raises(ConfigurationError, match="beta0 length"):
            maximize_loglik(poisson_loglik, count_data.X, count_data.y, np.zeros(2))

    def test_unscaled_quadratic_design(self, patent_data):
        X, y = patent_data.X, patent_data.y
        beta_hat, se, _ = maximize_loglik(poisson_loglik, X, y, np.zeros(X.shape[1]))
        reference = _poisson_newton(X, y)
        assert np.any(beta_hat != 0.0)
        np.testing.assert_allclose(beta_hat, reference, rtol=1e-3, atol=5e-4)
        np.testing.assert_allclose(se, _inverse_fisher_se(X, reference), rtol=2e-2)


# ---------------------------------------------------------------------------
# estimate_map
# ---------------------------------------------------------------------------


class TestEstimateMAP:
    def test_weak_prior_close_to_mle(self, count_data):
        mle = estimate_mle(count_data)
        result = estimate_map(count_data, PriorSpec.from_variance(5.0))
        assert isinstance(result, MAPResult)
        np.testing.assert_allclose(result.estimate, mle.estimate, atol=1e-2)

    def test_log_posterior_decomposes(self, count_data):
        result = estimate_map(count_data, 5.0)
        assert result.log_posterior == pytest.approx(
            result.log_likelihood + result.log_prior, rel=1e-8
        )

    def test_tight_prior_shrinks(self, count_data):
        mle = estimate_mle(count_data)
        result = estimate_map(count_data, {"intercept": 5.0, "x1": 1e-4, "x2": 1e-4})
        assert abs(result.estimate[1]) < abs(mle.estimate[1])
        assert abs(result.estimate[2]) < abs(mle.estimate[2])

    def test_weak_prior_standard_errors_close_to_mle(self, count_data):
        mle = estimate_mle(count_data)
        result = estimate_map(count_data, 5.0)
        np.testing.assert_allclose(result.std_errors, mle.std_errors, rtol=1e-2)

    def test_unscaled_quadratic_design(self, patent_data):
        mle = estimate_mle(patent_data)
        result = estimate_map(patent_data, 100.0)
        assert result.std_errors is not None
        np.testing.assert_allclose(result.estimate, mle.estimate, rtol=1e-2, atol=1e-3)

    def test_standard_errors_when_optimizer_reports_precision_loss(self, count_data, monkeypatch):
        reference = estimate_map(count_data, 5.0)
        real_minimize = mle_module.optimize.minimize

        def precision_loss_minimize(*args, **kwargs):
            result = real_minimize(*args, **kwargs)
            result.success = False
            result.message = "Desired error not necessarily achieved due to precision loss."
            return result

        monkeypatch.setattr(mle_module.optimize, "minimize", precision_loss_minimize)
        result = estimate_map(count_data, 5.0)
        assert not result.success
        np.testing.assert_allclose(result.std_errors, reference.std_errors, rtol=1e-8)

    def test_summary_header(self, count_data):
        text = estimate_map(count_data, 5.0).summary()
        assert "Maximum A Posteriori" in text
        assert "Log-prior" in text
