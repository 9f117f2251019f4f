"""
Unit tests for composite models, finite mixtures and Dirichlet models.

Tests cover:
- Composite densities factor over the parts of a datum
- EM for finite mixtures of scalar and composite components
- Dirichlet and product-Dirichlet likelihoods
- Slice samplers for Dirichlet concentration parameters
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose
from scipy import stats

from bayesgibbs.models.composite import (
    CompositeEmMixtureComponent,
    CompositeModel,
    FiniteMixtureModel,
)
from bayesgibbs.models.dirichlet import (
    DirichletModel,
    DirichletSuf,
    ProductDirichletModel,
)
from bayesgibbs.models.gamma import GammaModel
from bayesgibbs.models.gaussian import GaussianModel
from bayesgibbs.models.poisson import PoissonModel
from bayesgibbs.inference.dirichlet_samplers import (
    DirichletPosteriorSampler,
    ProductDirichletPosteriorSampler,
)
from bayesgibbs.inference.poisson_samplers import PoissonGammaSampler


NU = np.array([2.0, 3.0, 5.0])


def gaussian_mixture_data(n: int = 2000, seed: int = 0) -> np.ndarray:
    rng = np.random.default_rng(seed)
    first = rng.uniform(size=n) < 0.3
    return np.where(first, rng.normal(-2.0, 0.5, size=n), rng.normal(3.0, 1.0, size=n))


class TestCompositeModel:
    """Tests for products of independent sub-models."""

    def test_pdf_factors(self) -> None:
        gaussian, poisson = GaussianModel(0.5, 2.0), PoissonModel(3.0)
        model = CompositeModel([gaussian, poisson])

        expected = gaussian.logp(1.2) + poisson.logp(4)
        assert_allclose(model.pdf((1.2, 4), logscale=True), expected)
        assert_allclose(model.pdf((1.2, 4)), np.exp(expected))

    def test_add_data_splits(self) -> None:
        gaussian, poisson = GaussianModel(), PoissonModel()
        model = CompositeModel([gaussian, poisson])
        model.set_data([(1.0, 2), (3.0, 4)])

        assert gaussian.suf.n == 2
        assert gaussian.suf.sum == 4.0
        assert poisson.suf.sum == 6.0
        assert len(model.data) == 2

        model.clear_data()
        assert gaussian.suf.n == 0
        assert len(poisson.data) == 0

    def test_wrong_number_of_parts(self) -> None:
        model = CompositeModel([GaussianModel(), PoissonModel()])
        with pytest.raises(ValueError, match="expected 2"):
            model.add_data((1.0, 2.0, 3.0))
        with pytest.raises(ValueError, match="at least one"):
            CompositeModel([])

    def test_params_concatenate(self) -> None:
        model = CompositeModel([GaussianModel(1.0, 2.0), PoissonModel(3.0)])

        assert_allclose(model.vectorize_params(), [1.0, 4.0, 3.0])

    def test_sample_posterior_visits_sub_models(self) -> None:
        poisson = PoissonModel(1.0)
        poisson.set_method(PoissonGammaSampler(poisson, GammaModel(1.0, 1.0), seed=1))
        gaussian = GaussianModel()
        model = CompositeModel([poisson, gaussian])
        model.add_data((2, 0.0))

        with pytest.raises(RuntimeError, match="GaussianModel has no posterior sampler"):
            model.sample_posterior()

    def test_simulate(self) -> None:
        model = CompositeModel([GaussianModel(), PoissonModel(2.0)])
        y, k = model.simulate(np.random.default_rng(2))

        assert isinstance(y, float)
        assert k >= 0


class TestFiniteMixture:
    """Tests for EM on finite mixtures."""

    def test_invalid_weights(self) -> None:
        components = [GaussianModel(), GaussianModel()]
        with pytest.raises(ValueError, match="sum to 1"):
            FiniteMixtureModel(components, np.array([0.5, 0.6]))
        with pytest.raises(ValueError, match="Expected 2 weights"):
            FiniteMixtureModel(components, np.array([1.0]))

    def test_pdf_is_weighted_sum(self) -> None:
        a, b = GaussianModel(-1.0, 1.0), GaussianModel(2.0, 0.5)
        mix = FiniteMixtureModel([a, b], np.array([0.25, 0.75]))

        expected = 0.25 * stats.norm.pdf(0.3, -1, 1) + 0.75 * stats.norm.pdf(0.3, 2, 0.5)
        assert_allclose(mix.pdf(0.3), expected)
        resp = mix.responsibilities(0.3)
        assert_allclose(resp.sum(), 1.0)
        assert_allclose(resp[0], 0.25 * stats.norm.pdf(0.3, -1, 1) / expected)

    def test_em_is_monotone_and_recovers(self) -> None:
        mix = FiniteMixtureModel([GaussianModel(-1.0, 1.0), GaussianModel(1.0, 1.0)])
        mix.set_data(gaussian_mixture_data())

        history = [mix.em_step() for _ in range(30)]
        assert np.all(np.diff(history) > -1e-6)

        mix.run_em()
        assert_allclose(mix.weights, [0.3, 0.7], atol=0.04)
        assert_allclose(mix.components[0].mu, -2.0, atol=0.1)
        assert_allclose(mix.components[1].mu, 3.0, atol=0.1)
        assert_allclose(mix.components[0].sigma, 0.5, atol=0.1)

    def test_composite_components(self) -> None:
        """EM over (normal, Poisson) pairs recovers both parts."""
        rng = np.random.default_rng(3)
        first = rng.uniform(size=1500) < 0.4
        y = np.where(first, rng.normal(-2.0, 1.0, 1500), rng.normal(2.0, 1.0, 1500))
        k = np.where(first, rng.poisson(1.0, 1500), rng.poisson(6.0, 1500))
        components = [
            CompositeEmMixtureComponent([GaussianModel(-1.0, 1.0), PoissonModel(2.0)]),
            CompositeEmMixtureComponent([GaussianModel(1.0, 1.0), PoissonModel(4.0)]),
        ]
        mix = FiniteMixtureModel(components)
        mix.set_data(list(zip(y, k)))
        mix.run_em()

        assert_allclose(mix.weights, [0.4, 0.6], atol=0.04)
        assert_allclose(components[0].models[0].mu, -2.0, atol=0.15)
        assert_allclose(components[1].models[1].lam, 6.0, atol=0.3)

    def test_gamma_component_ignores_data_outside_support(self) -> None:
        """Negative data get zero responsibility and do not poison the Gamma fit."""
        gamma = GammaModel(2.0, 1.0)
        mix = FiniteMixtureModel([GaussianModel(0.0, 1.0), gamma])
        mix.set_data([-0.5, 0.3, 1.5, 2.0, 3.1])
        loglike = mix.em_step()

        assert np.isfinite(loglike)
        assert np.all(np.isfinite(gamma.suf.to_vector()))
        assert gamma.suf.n < 4.0
        assert (gamma.alpha, gamma.beta) != (2.0, 1.0)

    def test_simulate_uses_weights(self) -> None:
        mix = FiniteMixtureModel(
            [GaussianModel(-100.0, 1.0), GaussianModel(100.0, 1.0)], np.array([0.2, 0.8])
        )
        rng = np.random.default_rng(4)
        draws = np.array([mix.simulate(rng) for _ in range(5000)])

        assert_allclose(np.mean(draws > 0), 0.8, atol=0.02)


class TestDirichletModels:
    """Tests for Dirichlet and product-Dirichlet models."""

    def test_suf_combine_and_round_trip(self) -> None:
        rng = np.random.default_rng(5)
        draws = rng.dirichlet(NU, size=10)
        a, b, full = DirichletSuf(3), DirichletSuf(3), DirichletSuf(3)
        for i, p in enumerate(draws):
            (a if i < 4 else b).update(p)
            full.update(p)
        a.combine(b)
        assert_allclose(a.to_vector(), full.to_vector())

        restored = DirichletSuf(3)
        restored.from_vector(full.to_vector())
        assert_allclose(restored.sumlog, np.log(draws).sum(axis=0))

    def test_logp_matches_scipy(self) -> None:
        p = np.array([0.2, 0.3, 0.5])

        assert_allclose(DirichletModel(NU).logp(p), stats.dirichlet(NU).logpdf(p))

    def test_invalid_nu(self) -> None:
        with pytest.raises(ValueError, match="at least 2"):
            DirichletModel(np.array([1.0]))
        with pytest.raises(ValueError, match="positive"):
            DirichletModel(np.array([1.0, 0.0]))

    def test_gradient(self) -> None:
        model = DirichletModel(NU)
        model.set_data(np.random.default_rng(6).dirichlet(NU, size=50))
        theta = np.array([1.5, 2.5, 4.0])
        eps = 1e-6

        _, gradient, _ = model.log_likelihood(theta, 1)
        for j in range(3):
            e = np.zeros(3)
            e[j] = eps
            numeric = (model.log_likelihood(theta + e)[0] - model.log_likelihood(theta - e)[0]) / (2 * eps)
            assert_allclose(gradient[j], numeric, rtol=1e-5)

    def test_mle(self) -> None:
        model = DirichletModel(np.ones(3))
        model.set_data(np.random.default_rng(7).dirichlet(NU, size=3000))
        model.mle()

        assert_allclose(model.nu, NU, rtol=0.1)

    def test_product_dirichlet_logp(self) -> None:
        Nu = np.array([[5.0, 1.0], [2.0, 4.0]])
        Q = np.array([[0.8, 0.2], [0.3, 0.7]])
        model = ProductDirichletModel(Nu)

        expected = stats.dirichlet(Nu[0]).logpdf(Q[0]) + stats.dirichlet(Nu[1]).logpdf(Q[1])
        assert_allclose(model.logp(Q), expected)
        with pytest.raises(ValueError, match="square"):
            ProductDirichletModel(np.ones((2, 3)))


class TestDirichletSamplers:
    """Tests for the Dirichlet concentration slice samplers."""

    def test_posterior_near_mle(self) -> None:
        model = DirichletModel(np.ones(3))
        model.set_data(np.random.default_rng(8).dirichlet(NU, size=500))
        model.mle()
        mle = model.nu.copy()
        sampler = DirichletPosteriorSampler(
            model, DirichletModel(np.ones(3)), GammaModel(1.0, 0.1), seed=9
        )
        model.set_method(sampler)

        draws = []
        for _ in range(300):
            model.sample_posterior()
            draws.append(model.nu.copy())

        assert np.all(np.array(draws) > 0)
        assert_allclose(np.mean(draws[50:], axis=0), mle, rtol=0.15)
        assert np.isfinite(model.logpri())

    def test_min_nu(self) -> None:
        model = DirichletModel(np.full(3, 2.0))
        model.set_data(np.random.default_rng(10).dirichlet([0.5, 0.5, 0.5], size=50))
        sampler = DirichletPosteriorSampler(
            model, DirichletModel(np.ones(3)), GammaModel(1.0, 0.1), min_nu=1.0, seed=11
        )
        for _ in range(50):
            sampler.draw()
            assert np.all(model.nu >= 1.0)

    def test_invalid_arguments(self) -> None:
        model = DirichletModel(NU)
        with pytest.raises(ValueError, match="dimension"):
            DirichletPosteriorSampler(model, DirichletModel(np.ones(2)), GammaModel())
        with pytest.raises(ValueError, match="min_nu"):
            DirichletPosteriorSampler(model, DirichletModel(np.ones(3)), GammaModel(), min_nu=-1.0)

    def test_product_sampler(self) -> None:
        Nu = np.array([[5.0, 1.0], [2.0, 4.0]])
        truth = ProductDirichletModel(Nu)
        rng = np.random.default_rng(12)
        model = ProductDirichletModel.symmetric(2, 2.0)
        model.set_data([truth.simulate(rng) for _ in range(400)])
        sampler = ProductDirichletPosteriorSampler(
            model, DirichletModel(np.ones(2)), GammaModel(1.0, 0.1), seed=13
        )
        model.set_method(sampler)

        draws = []
        for i in range(300):
            model.sample_posterior()
            if i >= 100:
                draws.append(model.Nu.copy())

        assert_allclose(np.mean(draws, axis=0), Nu, rtol=0.25)

    def test_product_sampler_per_row_priors(self) -> None:
        model = ProductDirichletModel.symmetric(2)
        with pytest.raises(ValueError, match="one entry per row"):
            ProductDirichletPosteriorSampler(
                model, [DirichletModel(np.ones(2))], GammaModel()
            )
