"""
Unit tests for multinomial choice models and their samplers.

Tests cover:
- Logit and probit choice probabilities
- Multinomial logit derivatives and maximum likelihood
- Gumbel normal mixture approximation
- MLAuxMixSampler and MnpSampler posterior behaviour
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose
from scipy import stats
from scipy.special import softmax

from bayesgibbs.models.multinomial import MultinomialLogitModel, MultinomialProbitModel
from bayesgibbs.models.mvn import MvnModel
from bayesgibbs.inference.multinomial_samplers import (
    EULER_GAMMA,
    MLAuxMixSampler,
    MnpSampler,
    gumbel_mixture,
)


BETA = np.array([[0.5, 1.0], [-0.5, -1.0]])


def simulated_model(cls, n: int, seed: int = 0):
    rng = np.random.default_rng(seed)
    model = cls(BETA.copy())
    X = rng.normal(size=(n, 2))
    X[:, 0] = 1.0
    for x in X:
        model.add_data((model.simulate(rng, x), x))
    return model


def vague_prior() -> MvnModel:
    return MvnModel(np.zeros(2), 10.0 * np.eye(2))


class TestChoiceModels:
    """Tests for logit and probit choice models."""

    def test_with_dims(self) -> None:
        model = MultinomialLogitModel.with_dims(4, 3)

        assert model.nchoices == 4
        assert model.xdim == 3
        with pytest.raises(ValueError, match="at least 2"):
            MultinomialLogitModel.with_dims(1, 3)

    def test_invalid_choice_raises(self) -> None:
        model = MultinomialLogitModel(BETA)
        with pytest.raises(ValueError, match="Choice"):
            model.add_data((3, np.ones(2)))
        with pytest.raises(ValueError, match="length 2"):
            model.add_data((0, np.ones(3)))

    def test_logit_probabilities(self) -> None:
        model = MultinomialLogitModel(BETA)
        x = np.array([1.0, 0.3])
        eta = np.array([0.0, 0.5 + 0.3, -0.5 - 0.3])

        assert_allclose(model.choice_probabilities(x), softmax(eta))
        assert_allclose(model.logp((2, x)), np.log(softmax(eta)[2]))

    def test_probit_two_choices(self) -> None:
        """With two choices P(y = 1) = Φ(η / √2)."""
        model = MultinomialProbitModel(np.array([[0.8]]))
        probs = model.choice_probabilities(np.array([1.0]))

        assert_allclose(probs[1], stats.norm.cdf(0.8 / np.sqrt(2.0)), rtol=1e-6)
        assert_allclose(probs.sum(), 1.0)

    def test_probit_simulation_frequencies(self) -> None:
        model = MultinomialProbitModel(BETA)
        x = np.array([1.0, 0.5])
        rng = np.random.default_rng(1)
        draws = [model.simulate(rng, x) for _ in range(20000)]
        freq = np.bincount(draws, minlength=3) / 20000

        assert_allclose(freq, model.choice_probabilities(x), atol=0.015)

    def test_logit_gradient_and_hessian(self) -> None:
        model = simulated_model(MultinomialLogitModel, 50)
        theta = np.array([0.1, 0.2, -0.3, 0.4])
        eps = 1e-5

        _, gradient, hessian = model.log_likelihood(theta, 2)
        for j in range(4):
            e = np.zeros(4)
            e[j] = eps
            up = model.log_likelihood(theta + e, 1)
            down = model.log_likelihood(theta - e, 1)
            assert_allclose(gradient[j], (up[0] - down[0]) / (2 * eps), rtol=1e-5)
            assert_allclose(hessian[:, j], (up[1] - down[1]) / (2 * eps), rtol=1e-4, atol=1e-6)

    def test_logit_mle(self) -> None:
        model = simulated_model(MultinomialLogitModel, 3000, seed=2)
        model.set_beta(np.zeros((2, 2)))

        result = model.mle()

        assert result.converged
        assert_allclose(model.beta, BETA, atol=0.2)

    def test_probit_loglike_sums_logp(self) -> None:
        model = simulated_model(MultinomialProbitModel, 20)

        assert_allclose(model.loglike(), sum(model.logp(d) for d in model.data))


class TestGumbelMixture:
    """Tests for the normal mixture approximation to the Gumbel error."""

    def test_fit_is_cached(self) -> None:
        assert gumbel_mixture(5) is gumbel_mixture(5)

    def test_moments_match_gumbel(self) -> None:
        mix = gumbel_mixture(5)
        mean = float(np.dot(mix.weights, mix.mu))
        second = float(np.dot(mix.weights, mix.sigma ** 2 + mix.mu ** 2))

        assert len(mix.weights) == 5
        assert_allclose(mean, EULER_GAMMA, atol=0.05)
        assert_allclose(second - mean ** 2, np.pi ** 2 / 6, atol=0.15)


class TestChoiceSamplers:
    """Tests for the multinomial logit and probit samplers."""

    def test_prior_dimension_mismatch(self) -> None:
        model = MultinomialLogitModel(BETA)
        with pytest.raises(ValueError, match="does not match"):
            MLAuxMixSampler(model, MvnModel(np.zeros(3)))

    def test_logpri_sums_rows(self) -> None:
        model = MultinomialProbitModel(BETA)
        sampler = MnpSampler(model, vague_prior())
        dist = stats.multivariate_normal(np.zeros(2), 10.0 * np.eye(2))

        assert_allclose(sampler.logpri(), dist.logpdf(BETA[0]) + dist.logpdf(BETA[1]))

    def test_auxmix_posterior_near_mle(self) -> None:
        model = simulated_model(MultinomialLogitModel, 300, seed=3)
        model.mle()
        mle = model.beta.copy()
        sampler = MLAuxMixSampler(model, vague_prior(), seed=4)
        model.set_method(sampler)

        draws = []
        for i in range(300):
            model.sample_posterior()
            if i >= 50:
                draws.append(model.beta.copy())

        assert_allclose(np.mean(draws, axis=0), mle, atol=0.3)

    def test_mnp_utilities_respect_choices(self) -> None:
        model = simulated_model(MultinomialProbitModel, 100, seed=5)
        sampler = MnpSampler(model, vague_prior(), seed=6)
        for _ in range(3):
            sampler.draw()

        y, _ = model.choices_and_design()
        assert sampler.utilities.shape == (100, 3)
        assert np.all(np.argmax(sampler.utilities, axis=1) == y)

    def test_mnp_posterior_near_truth(self) -> None:
        model = simulated_model(MultinomialProbitModel, 150, seed=7)
        sampler = MnpSampler(model, vague_prior(), seed=8)
        model.set_method(sampler)

        draws = []
        for i in range(250):
            model.sample_posterior()
            if i >= 50:
                draws.append(model.beta.copy())

        assert_allclose(np.mean(draws, axis=0), BETA, atol=0.5)
