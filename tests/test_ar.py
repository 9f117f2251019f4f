"""
Unit tests for the AR(p) model and its posterior sampler.

Tests cover:
- Stationarity checks
- Lagged sufficient statistics and conditional least squares
- Joint and one-at-a-time coefficient draws
- Innovation variance draws and the sigma upper limit
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose
from scipy import stats

from bayesgibbs.models.ar import ArModel, is_stationary
from bayesgibbs.models.gamma import GammaModel
from bayesgibbs.inference.ar_sampler import ArPosteriorSampler
from bayesgibbs.inference.gaussian_samplers import sigsq_log_prior


PHI = np.array([0.5, -0.3])


def simulated_model(n: int = 500, seed: int = 0) -> ArModel:
    rng = np.random.default_rng(seed)
    model = ArModel(PHI.copy())
    model.set_series(model.simulate(rng, n))
    return model


class TestStationarity:
    """Tests for the stationarity check."""

    @pytest.mark.parametrize(
        "phi,expected",
        [
            ([0.5], True),
            ([0.999], True),
            ([1.0], False),
            ([-1.2], False),
            ([0.5, 0.3], True),
            ([0.5, 0.6], False),
            ([0.0, 0.0], True),
            ([0.0, 0.9], True),
            ([1.8, -0.9], True),
        ],
    )
    def test_is_stationary(self, phi, expected) -> None:
        assert is_stationary(np.array(phi)) is expected

    def test_model_check(self) -> None:
        model = ArModel(np.array([0.5]))

        assert model.check_stationary()
        assert not model.check_stationary(np.array([1.5]))


class TestArModel:
    """Tests for the AR model and its lagged statistics."""

    def test_lagged_rows(self) -> None:
        """Each point after the first p adds one row, most recent lag first."""
        model = ArModel.with_lags(2)
        model.set_series([1.0, 2.0, 3.0, 4.0])

        assert model.suf.n == 2
        assert_allclose(model.suf.xtx, [[13.0, 8.0], [8.0, 5.0]])
        assert_allclose(model.suf.xty, [18.0, 11.0])
        assert_allclose(model.suf.yty, 25.0)

    def test_refresh_suf(self) -> None:
        model = simulated_model(50)
        before = model.suf.to_vector()
        model.clear_suf()
        assert model.suf.n == 0

        model.refresh_suf()
        assert_allclose(model.suf.to_vector(), before)
        assert len(model.data) == 50

    def test_invalid_construction(self) -> None:
        with pytest.raises(ValueError, match="at least one lag"):
            ArModel(np.zeros(0))
        with pytest.raises(ValueError, match="sigma must be positive"):
            ArModel(np.array([0.1]), sigma=-1.0)

    def test_simulate_length(self) -> None:
        model = ArModel(PHI)
        series = model.simulate(np.random.default_rng(1), 200)

        assert series.shape == (200,)

    def test_loglike_is_conditional_normal(self) -> None:
        series = np.array([0.3, -0.1, 0.5, 0.2, -0.4])
        model = ArModel(PHI, sigma=0.8)
        model.set_series(series)

        expected = sum(
            stats.norm.logpdf(series[t], PHI[0] * series[t - 1] + PHI[1] * series[t - 2], 0.8)
            for t in range(2, 5)
        )
        assert_allclose(model.loglike(), expected)

    def test_mle_recovers_coefficients(self) -> None:
        model = simulated_model(5000, seed=2)
        model.set_phi(np.zeros(2))
        model.mle()

        assert_allclose(model.phi, PHI, atol=0.05)
        assert_allclose(model.sigsq, 1.0, atol=0.08)


class TestArPosteriorSampler:
    """Tests for the AR posterior sampler."""

    def test_negative_max_proposals_raises(self) -> None:
        with pytest.raises(ValueError, match="max_proposals"):
            ArPosteriorSampler(ArModel(PHI), GammaModel(1.0, 1.0), max_proposals=-1)

    def test_invalid_sigma_upper_limit(self) -> None:
        with pytest.raises(ValueError, match="sigma_upper_limit"):
            ArPosteriorSampler(ArModel(PHI), GammaModel(1.0, 1.0), sigma_upper_limit=0.0)

    @pytest.mark.parametrize("max_proposals", [3, 0])
    def test_posterior_mean_near_mle(self, max_proposals) -> None:
        """Joint and one-at-a-time draws agree with least squares."""
        model = simulated_model(500, seed=3)
        model.mle()
        phi_hat, sigsq_hat = model.phi.copy(), model.sigsq
        sampler = ArPosteriorSampler(model, GammaModel(1.0, 1.0), max_proposals, seed=4)
        model.set_method(sampler)

        phis, sigsqs = [], []
        for i in range(600):
            model.sample_posterior()
            assert model.check_stationary()
            if i >= 100:
                phis.append(model.phi.copy())
                sigsqs.append(model.sigsq)

        assert_allclose(np.mean(phis, axis=0), phi_hat, atol=0.03)
        assert_allclose(np.mean(sigsqs), sigsq_hat, atol=0.1)

    def test_univariate_draw_requires_stationary_start(self) -> None:
        model = simulated_model(100)
        model.set_phi(np.array([1.5, 0.0]))
        sampler = ArPosteriorSampler(model, GammaModel(1.0, 1.0), max_proposals=0)

        with pytest.raises(RuntimeError, match="stationary starting value"):
            sampler.draw()

    def test_univariate_draw_near_boundary(self) -> None:
        """A unit root series keeps every draw inside the stationary region."""
        rng = np.random.default_rng(5)
        model = ArModel(np.array([0.0]))
        model.set_series(np.cumsum(rng.normal(size=300)))
        sampler = ArPosteriorSampler(model, GammaModel(1.0, 1.0), max_proposals=0, seed=6)

        for _ in range(50):
            sampler.draw()
            assert abs(model.phi[0]) < 1.0

    def test_sigma_upper_limit(self) -> None:
        model = simulated_model(300, seed=7)
        sampler = ArPosteriorSampler(
            model, GammaModel(1.0, 1.0), sigma_upper_limit=0.9, seed=8
        )
        for _ in range(50):
            sampler.draw()
            assert model.sigma <= 0.9

        model.set_sigsq(1.0)
        assert sampler.logpri() == -np.inf

    def test_logpri(self) -> None:
        model = ArModel(PHI, sigma=1.2)
        prior = GammaModel(2.0, 1.0)
        sampler = ArPosteriorSampler(model, prior)

        assert_allclose(sampler.logpri(), sigsq_log_prior(prior, 1.44))
        model.set_phi(np.array([0.5, 0.6]))
        assert sampler.logpri() == -np.inf
