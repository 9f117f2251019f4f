"""
Unit tests for scalar models (Gaussian, Gamma, Poisson) and their samplers.

Tests cover:
- Sufficient statistics: combine, vector round trip
- Densities and support boundaries
- Maximum likelihood
- Conjugate posterior moments
- Slice-sampled Gamma parameters and the hierarchical Gamma model
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose, assert_array_equal

from bayesgibbs.models.params import UnivParams, VectorParams, SpdParams
from bayesgibbs.models.gaussian import GaussianModel, GaussianSuf
from bayesgibbs.models.gamma import GammaModel, GammaSuf
from bayesgibbs.models.poisson import PoissonModel, PoissonSuf
from bayesgibbs.models.hierarchical import HierarchicalGammaModel
from bayesgibbs.models.markov import MarkovSuf
from bayesgibbs.models.regression import WeightedRegSuf
from bayesgibbs.models.wishart import WishartSuf
from bayesgibbs.inference.gaussian_samplers import (
    GaussianMeanSampler,
    GaussianVarSampler,
    GaussianConjSampler,
    GaussianMeanVarSampler,
    SharedSigsqSampler,
)
from bayesgibbs.inference.poisson_samplers import PoissonGammaSampler
from bayesgibbs.inference.gamma_samplers import (
    GammaPosteriorSampler,
    GammaPosteriorSamplerBeta,
    HierarchicalGammaSampler,
)


class TestSufficientStatistics:
    """Tests for combine and serialization of scalar statistics."""

    @pytest.mark.parametrize("suf_class", [GaussianSuf, GammaSuf, PoissonSuf])
    def test_combine_equals_union(self, suf_class) -> None:
        """combine(suf(A), suf(B)) equals suf(A ∪ B)."""
        a_data, b_data = [1.0, 2.0, 4.0], [3.0, 5.0]
        a, b, both = suf_class(), suf_class(), suf_class()
        for y in a_data:
            a.update(y)
        for y in b_data:
            b.update(y)
        for y in a_data + b_data:
            both.update(y)
        a.combine(b)
        assert_allclose(a.to_vector(), both.to_vector())

    @pytest.mark.parametrize("suf_class", [GaussianSuf, GammaSuf, PoissonSuf])
    def test_vector_round_trip(self, suf_class) -> None:
        """from_vector(to_vector(s)) recovers s."""
        suf = suf_class()
        for y in [1.0, 2.0, 7.0]:
            suf.update(y)
        restored = suf_class()
        restored.from_vector(suf.to_vector())
        assert_array_equal(restored.to_vector(), suf.to_vector())

    def test_combine_type_mismatch_raises(self) -> None:
        """Statistics of different types cannot be combined."""
        with pytest.raises(ValueError, match="Cannot combine"):
            GaussianSuf().combine(GammaSuf())

    def test_weighted_update(self) -> None:
        """A fractional weight scales every component."""
        suf = GaussianSuf()
        suf.update_with_weight(2.0, 0.25)
        assert_allclose(suf.to_vector(), [0.25, 0.5, 1.0])

    @pytest.mark.parametrize(
        "make_suf,datum",
        [
            (GammaSuf, 2.5),
            (lambda: WishartSuf(2), np.array([[2.0, 0.5], [0.5, 1.0]])),
            (lambda: MarkovSuf(3), [0, 2, 2, 1]),
            (lambda: WeightedRegSuf(2), (1.5, np.array([1.0, -2.0]), 3.0)),
        ],
    )
    def test_weighted_update_scales_unit_update(self, make_suf, datum) -> None:
        """A weight p contributes p times what an unweighted update adds."""
        unit, weighted = make_suf(), make_suf()
        unit.update(datum)
        weighted.update_with_weight(datum, 0.3)
        assert_allclose(weighted.to_vector(), 0.3 * unit.to_vector())

    def test_zero_weight_leaves_gamma_suf_unchanged(self) -> None:
        """A non-positive value with zero weight is ignored, not NaN."""
        suf = GammaSuf()
        suf.update_with_weight(2.0, 1.0)
        suf.update_with_weight(-1.0, 0.0)
        suf.update_with_weight(0.0, 0.0)
        assert_allclose(suf.to_vector(), [1.0, 2.0, np.log(2.0)])

    def test_clone_empty(self) -> None:
        """clone_empty gives an independent cleared copy."""
        suf = GaussianSuf()
        suf.update(3.0)
        clone = suf.clone_empty()
        assert clone.n == 0
        assert suf.n == 1


class TestParams:
    """Tests for parameter serialization."""

    def test_chain_restore_from_one_buffer(self) -> None:
        """Several parameters are restored in order from one iterator."""
        a, b = UnivParams(1.5), VectorParams(np.array([1.0, 2.0, 3.0]))
        buffer = np.concatenate([a.to_vector(), b.to_vector()])
        a2, b2 = UnivParams(), VectorParams(np.zeros(3))
        it = iter(buffer)
        a2.from_vector(it)
        b2.from_vector(it)
        assert a2.value == 1.5
        assert_array_equal(b2.value, [1.0, 2.0, 3.0])

    def test_spd_minimal_encoding(self) -> None:
        """The minimal encoding of an SPD matrix is its lower triangle."""
        S = np.array([[2.0, 0.5], [0.5, 1.0]])
        prm = SpdParams(S)
        assert prm.size() == 3
        restored = SpdParams(np.eye(2))
        restored.from_vector(prm.to_vector())
        assert_allclose(restored.value, S)
        restored.from_vector(prm.to_vector(minimal=False), minimal=False)
        assert_allclose(restored.value, S)

    def test_spd_rejects_non_pd(self) -> None:
        """A non-positive-definite value raises ValueError."""
        with pytest.raises(ValueError, match="positive definite"):
            SpdParams(np.array([[1.0, 2.0], [2.0, 1.0]]))

    def test_short_buffer_raises(self) -> None:
        """Too few values raise ValueError."""
        with pytest.raises(ValueError, match="Expected 3 values"):
            VectorParams(np.zeros(3)).from_vector(np.zeros(2))

    def test_model_vectorize_round_trip(self) -> None:
        """Model parameters round trip through one flat vector."""
        model = GaussianModel(1.5, 2.0)
        other = GaussianModel()
        other.unvectorize_params(model.vectorize_params())
        assert other.mu == 1.5
        assert_allclose(other.sigsq, 4.0)

    def test_model_unvectorize_from_iterator(self) -> None:
        """Models restore from an iterator and leave the rest unconsumed."""
        it = iter([0.5, 9.0, 7.0])
        model = GaussianModel()
        model.unvectorize_params(it)
        assert model.mu == 0.5
        assert model.sigsq == 9.0
        assert next(it) == 7.0


class TestGaussianModel:
    """Tests for the Gaussian model."""

    def test_logp(self) -> None:
        """logp is the normal log density."""
        model = GaussianModel(1.0, 2.0)
        expected = -0.5 * np.log(2 * np.pi * 4.0) - 0.5 * (3.0 - 1.0) ** 2 / 4.0
        assert_allclose(model.logp(3.0), expected)

    def test_invalid_sigma_raises(self) -> None:
        """Non-positive sigma raises ValueError."""
        with pytest.raises(ValueError, match="positive"):
            GaussianModel(0.0, -1.0)

    def test_mle_cases(self) -> None:
        """Empty data gives (0, 1); one point gives (y, 1); else biased variance."""
        model = GaussianModel(5.0, 3.0)
        model.mle()
        assert (model.mu, model.sigsq) == (0.0, 1.0)
        model.add_data(4.0)
        model.mle()
        assert (model.mu, model.sigsq) == (4.0, 1.0)
        model.set_data([1.0, 2.0, 3.0])
        model.mle()
        assert_allclose([model.mu, model.sigsq], [2.0, 2.0 / 3.0])

    def test_log_likelihood_gradient(self) -> None:
        """The analytic gradient matches finite differences."""
        model = GaussianModel()
        model.set_data([0.5, 1.5, -0.3, 2.2])
        theta = np.array([0.4, 1.3])
        _, gradient, _ = model.log_likelihood(theta, 1)
        eps = 1e-6
        numeric = [
            (model.log_likelihood(theta + eps * e)[0] - model.log_likelihood(theta - eps * e)[0])
            / (2 * eps)
            for e in np.eye(2)
        ]
        assert_allclose(gradient, numeric, rtol=1e-5)

    def test_log_likelihood_domain(self) -> None:
        """A non-positive variance gives -inf."""
        model = GaussianModel()
        model.add_data(1.0)
        assert model.log_likelihood(np.array([0.0, -1.0]))[0] == -np.inf

    def test_no_sampler_raises(self) -> None:
        """Posterior sampling without a sampler is a configuration error."""
        with pytest.raises(RuntimeError, match="no posterior sampler"):
            GaussianModel().sample_posterior()


class TestGammaModel:
    """Tests for the Gamma model."""

    def test_logp_negative_is_minus_inf(self) -> None:
        """The log density at a negative argument is -inf, not nan."""
        value = GammaModel(2.0, 1.0).logp(-1.0)
        assert value == -np.inf

    def test_invalid_parameters_raise(self) -> None:
        """Non-positive shape or rate raises ValueError."""
        with pytest.raises(ValueError, match="positive"):
            GammaModel(0.0, 1.0)

    def test_mean_and_variance(self) -> None:
        """mean = α / β and variance = α / β²."""
        model = GammaModel.from_mean(2.0, 4.0)
        assert_allclose([model.mean, model.variance], [2.0, 1.0])

    def test_mle_recovers_parameters(self) -> None:
        """Newton MLE recovers the generating parameters."""
        rng = np.random.default_rng(12)
        model = GammaModel()
        model.set_data(rng.gamma(3.0, 1.0 / 2.0, size=5000))
        result = model.mle()
        assert result.converged
        assert_allclose([model.alpha, model.beta], [3.0, 2.0], rtol=0.06)

    def test_log_likelihood_domain(self) -> None:
        """Shape or rate <= 0 gives -inf."""
        model = GammaModel()
        model.add_data(1.0)
        assert model.log_likelihood(np.array([-1.0, 1.0]))[0] == -np.inf


class TestPoissonModel:
    """Tests for the Poisson model."""

    def test_logp(self) -> None:
        """logp is the Poisson mass; -inf off the integers."""
        model = PoissonModel(2.0)
        assert_allclose(model.logp(3.0), 3 * np.log(2.0) - 2.0 - np.log(6.0))
        assert model.logp(-1.0) == -np.inf
        assert model.logp(1.5) == -np.inf

    def test_mle(self) -> None:
        """The MLE is the sample mean."""
        model = PoissonModel()
        model.set_data([1, 2, 3, 6])
        model.mle()
        assert model.lam == 3.0

    def test_mle_all_zero_leaves_rate(self) -> None:
        """All-zero data leave λ unchanged."""
        model = PoissonModel(0.7)
        model.set_data([0, 0, 0])
        model.mle()
        assert model.lam == 0.7


class TestGaussianSamplers:
    """Tests for Gaussian conjugate samplers."""

    def test_mean_posterior_moments(self) -> None:
        """Known σ = 1, N(0, 1000) prior, data {1, 2, 3}."""
        model = GaussianModel(0.0, 1.0)
        model.set_data([1.0, 2.0, 3.0])
        prior = GaussianModel(0.0, np.sqrt(1000.0))
        model.set_method(GaussianMeanSampler(model, prior, seed=13))
        draws = []
        for _ in range(20000):
            model.sample_posterior()
            draws.append(model.mu)
        ivar = 3.0 + 1.0 / 1000.0
        assert_allclose(np.mean(draws), 6.0 / ivar, atol=0.015)
        assert_allclose(np.var(draws), 1.0 / ivar, atol=0.015)

    def test_mean_posterior_mode(self) -> None:
        """find_posterior_mode sets μ to the posterior mean."""
        model = GaussianModel(0.0, 1.0)
        model.set_data([1.0, 2.0, 3.0])
        model.set_method(GaussianMeanSampler(model, GaussianModel(0.0, np.sqrt(1000.0))))
        model.find_posterior_mode()
        assert_allclose(model.mu, 6.0 / 3.001)

    def test_var_sampler_upper_limit(self) -> None:
        """σ draws never exceed the upper limit."""
        model = GaussianModel(0.0, 1.0)
        model.set_data([-10.0, 10.0, -8.0, 9.0])
        sampler = GaussianVarSampler(model, GammaModel(1.0, 1.0), sigma_upper_limit=2.0, seed=14)
        for _ in range(200):
            sampler.draw()
            assert model.sigma <= 2.0
        assert np.isfinite(sampler.logpri())

    def test_var_sampler_invalid_limit(self) -> None:
        """A non-positive upper limit raises ValueError."""
        with pytest.raises(ValueError, match="sigma_upper_limit"):
            GaussianVarSampler(GaussianModel(), GammaModel(1.0, 1.0), sigma_upper_limit=0.0)

    def test_conjugate_posterior(self) -> None:
        """The normal-inverse-gamma posterior mean of μ is (κ mu0 + n ȳ) / κ_n."""
        model = GaussianModel()
        model.set_data([1.0, 2.0, 3.0])
        sampler = GaussianConjSampler(model, mu0=0.0, kappa=1.0, df=1.0, sigma_guess=1.0, seed=15)
        model.set_method(sampler)
        draws = []
        for _ in range(20000):
            model.sample_posterior()
            draws.append(model.mu)
        assert_allclose(np.mean(draws), 1.5, atol=0.03)
        model.find_posterior_mode()
        assert_allclose(model.mu, 1.5)
        assert np.isfinite(model.logpri())

    def test_mean_var_sampler_recovers_truth(self) -> None:
        """Alternating mean and variance draws concentrate near the truth."""
        rng = np.random.default_rng(16)
        model = GaussianModel()
        model.set_data(rng.normal(3.0, 2.0, size=2000))
        model.set_method(GaussianMeanVarSampler(
            model, GaussianModel(0.0, 10.0), GammaModel(1.0, 1.0), seed=17
        ))
        mus, sigmas = [], []
        for _ in range(500):
            model.sample_posterior()
            mus.append(model.mu)
            sigmas.append(model.sigma)
        assert_allclose(np.mean(mus[100:]), 3.0, atol=0.15)
        assert_allclose(np.mean(sigmas[100:]), 2.0, atol=0.1)

    def test_shared_sigsq(self) -> None:
        """Models sharing one variance object are updated together."""
        shared = UnivParams(1.0)
        m1 = GaussianModel(0.0, sigsq_prm=shared)
        m2 = GaussianModel(5.0, sigsq_prm=shared)
        m1.set_data([0.1, -0.2])
        m2.set_data([5.3, 4.9])
        sampler = SharedSigsqSampler([m1, m2], GammaModel(1.0, 1.0), seed=18)
        sampler.draw()
        assert m1.sigsq == m2.sigsq
        with pytest.raises(ValueError, match="share"):
            SharedSigsqSampler([m1, GaussianModel()], GammaModel(1.0, 1.0))


class TestPoissonGammaSampler:
    """Tests for the Gamma-Poisson conjugate sampler."""

    def _model(self) -> PoissonModel:
        model = PoissonModel(1.0)
        model.set_data([2, 1, 3, 0, 4])
        return model

    def test_posterior_moments(self) -> None:
        """sum = 10, n = 5 with a Gamma(2, 1) prior gives Gamma(12, 6)."""
        model = self._model()
        model.set_method(PoissonGammaSampler(model, GammaModel(2.0, 1.0), seed=19))
        draws = []
        for _ in range(20000):
            model.sample_posterior()
            draws.append(model.lam)
        assert_allclose(np.mean(draws), 2.0, atol=0.015)
        assert_allclose(np.var(draws), 1.0 / 3.0, atol=0.015)

    def test_posterior_mode(self) -> None:
        """The mode of Gamma(12, 6) is 11 / 6."""
        model = self._model()
        sampler = PoissonGammaSampler(model, GammaModel(2.0, 1.0))
        assert sampler.posterior_parameters() == (12.0, 6.0)
        sampler.find_posterior_mode()
        assert_allclose(model.lam, 11.0 / 6.0)

    def test_reproducible_from_seed(self) -> None:
        """Two samplers with the same seed produce the same draws."""
        m1, m2 = self._model(), self._model()
        s1 = PoissonGammaSampler(m1, GammaModel(2.0, 1.0), seed=5)
        s2 = PoissonGammaSampler(m2, GammaModel(2.0, 1.0), seed=5)
        s1.draw()
        s2.draw()
        assert m1.lam == m2.lam


class TestGammaSamplers:
    """Tests for slice-sampled Gamma parameters."""

    def _data(self) -> np.ndarray:
        return np.random.default_rng(20).gamma(3.0, 1.0 / 1.5, size=2000)

    def test_mean_shape_sampler(self) -> None:
        """Draws of (α, mean) concentrate near the truth (3, 2)."""
        model = GammaModel(1.0, 1.0)
        model.set_data(self._data())
        model.set_method(GammaPosteriorSampler(
            model, GammaModel(1.0, 0.1), GammaModel(1.0, 0.1), seed=21
        ))
        alphas, means = [], []
        for _ in range(400):
            model.sample_posterior()
            alphas.append(model.alpha)
            means.append(model.mean)
        assert_allclose(np.mean(alphas[100:]), 3.0, rtol=0.1)
        assert_allclose(np.mean(means[100:]), 2.0, rtol=0.05)

    def test_mean_beta_sampler(self) -> None:
        """Draws of (mean, β) concentrate near the truth (2, 1.5)."""
        model = GammaModel(1.0, 1.0)
        model.set_data(self._data())
        model.set_method(GammaPosteriorSamplerBeta(
            model, GammaModel(1.0, 0.1), GammaModel(1.0, 0.1), seed=22
        ))
        betas = []
        for _ in range(400):
            model.sample_posterior()
            betas.append(model.beta)
        assert_allclose(np.mean(betas[100:]), 1.5, rtol=0.1)
        assert_allclose(model.mean, 2.0, rtol=0.1)

    def test_hierarchical_gamma(self) -> None:
        """The hierarchical sampler keeps every parameter positive and finite."""
        rng = np.random.default_rng(23)
        n, sums, sumlogs = [], [], []
        for mean in [1.0, 2.0, 3.0, 4.0]:
            y = rng.gamma(2.0, mean / 2.0, size=50)
            n.append(len(y))
            sums.append(y.sum())
            sumlogs.append(np.log(y).sum())
        model = HierarchicalGammaModel(n, sums, sumlogs)
        assert model.number_of_groups == 4
        sampler = HierarchicalGammaSampler(
            model,
            GammaModel(1.0, 0.1), GammaModel(1.0, 0.1),
            GammaModel(1.0, 0.1), GammaModel(1.0, 0.1),
            seed=24,
        )
        model.set_method(sampler)
        for _ in range(50):
            model.sample_posterior()
        group_means = [m.mean for m in model.data_models]
        assert np.all(np.isfinite(group_means))
        assert group_means[0] < group_means[3]
        assert np.isfinite(model.logpri())
        assert np.isfinite(model.loglike())

    def test_hierarchical_length_mismatch(self) -> None:
        """Group summaries of unequal length raise ValueError."""
        with pytest.raises(ValueError, match="same length"):
            HierarchicalGammaModel([1, 2], [1.0], [0.0, 0.1])
