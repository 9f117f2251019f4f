"""
Unit tests for the hidden Markov model and its data imputer.

Tests cover:
- Forward filtering against brute-force enumeration
- Smoothed marginals and backward sampling
- Baum-Welch EM
- Serial and threaded hidden state imputation
- A full Gibbs sweep over states, chain and components
"""

import itertools

import pytest
import numpy as np
from numpy.testing import assert_allclose, assert_array_equal

from bayesgibbs.models.composite import CompositeEmMixtureComponent
from bayesgibbs.models.dirichlet import ProductDirichletModel
from bayesgibbs.models.gaussian import GaussianModel
from bayesgibbs.models.hmm import (
    HiddenMarkovModel,
    backward_sample,
    forward_backward,
    forward_filter,
)
from bayesgibbs.models.markov import MarkovModel
from bayesgibbs.inference.gaussian_samplers import GaussianConjSampler
from bayesgibbs.inference.hmm_imputer import HmmDataImputer
from bayesgibbs.inference.markov_sampler import MarkovConjSampler


Q = np.array([[0.95, 0.05], [0.10, 0.90]])
PI0 = np.array([0.5, 0.5])


def path_posterior(Q, pi0, logf):
    """Every state path with its unnormalized log probability."""
    T, S = logf.shape
    paths = list(itertools.product(range(S), repeat=T))
    logp = []
    for path in paths:
        value = np.log(pi0[path[0]]) + logf[0, path[0]]
        for t in range(1, T):
            value += np.log(Q[path[t - 1], path[t]]) + logf[t, path[t]]
        logp.append(value)
    return paths, np.array(logp)


def simulated_hmm(n_streams: int = 5, length: int = 200, seed: int = 0) -> HiddenMarkovModel:
    truth = HiddenMarkovModel(
        MarkovModel(Q, pi0=PI0), [GaussianModel(-2.0, 1.0), GaussianModel(2.0, 1.0)]
    )
    rng = np.random.default_rng(seed)
    hmm = HiddenMarkovModel(
        MarkovModel(state_space_size=2), [GaussianModel(-1.0, 1.0), GaussianModel(1.0, 1.0)]
    )
    for _ in range(n_streams):
        _, observations = truth.simulate(rng, length)
        hmm.add_data(observations)
    return hmm


class TestForwardBackward:
    """Tests for the filtering and smoothing recursions."""

    def setup_method(self) -> None:
        rng = np.random.default_rng(1)
        self.logf = rng.normal(size=(4, 2))
        self.paths, self.path_logp = path_posterior(Q, PI0, self.logf)

    def test_loglike_matches_enumeration(self) -> None:
        filtered, loglike = forward_filter(Q, PI0, self.logf)

        assert_allclose(loglike, np.logaddexp.reduce(self.path_logp))
        assert_allclose(filtered.sum(axis=1), 1.0)

    def test_smoothed_marginals(self) -> None:
        marginals, transitions, _ = forward_backward(Q, PI0, self.logf)
        probs = np.exp(self.path_logp - np.logaddexp.reduce(self.path_logp))

        expected = np.zeros((4, 2))
        for path, p in zip(self.paths, probs):
            for t, s in enumerate(path):
                expected[t, s] += p
        assert_allclose(marginals, expected, atol=1e-12)
        assert_allclose(transitions.sum(), 3.0)

    def test_backward_sample_frequencies(self) -> None:
        filtered, _ = forward_filter(Q, PI0, self.logf)
        probs = np.exp(self.path_logp - np.logaddexp.reduce(self.path_logp))
        rng = np.random.default_rng(2)
        counts = {}
        for _ in range(20000):
            path = tuple(backward_sample(Q, filtered, rng))
            counts[path] = counts.get(path, 0) + 1

        for path, p in zip(self.paths, probs):
            assert abs(counts.get(path, 0) / 20000 - p) < 0.015

    def test_impossible_observation(self) -> None:
        logf = np.array([[0.0, 0.0], [-np.inf, -np.inf]])

        assert forward_filter(Q, PI0, logf)[1] == -np.inf


class TestHiddenMarkovModel:
    """Tests for the HMM container and EM."""

    def test_component_count_must_match(self) -> None:
        with pytest.raises(ValueError, match="Need 2 components"):
            HiddenMarkovModel(MarkovModel(Q), [GaussianModel()])

    def test_simulate(self) -> None:
        hmm = HiddenMarkovModel(MarkovModel(Q), [GaussianModel(-2.0), GaussianModel(2.0)])
        states, observations = hmm.simulate(np.random.default_rng(3), 50)

        assert len(states) == 50
        assert len(observations) == 50

    def test_loglike_sums_streams(self) -> None:
        hmm = simulated_hmm(3, 20)

        assert_allclose(hmm.loglike(), sum(hmm.stream_loglike(s) for s in hmm.data))

    def test_em(self) -> None:
        hmm = simulated_hmm(seed=4)
        history = [hmm.em_step() for _ in range(40)]

        assert np.all(np.diff(history) > -1e-6)
        assert_allclose(hmm.components[0].mu, -2.0, atol=0.15)
        assert_allclose(hmm.components[1].mu, 2.0, atol=0.15)
        assert_allclose(np.diag(hmm.markov.Q), np.diag(Q), atol=0.05)

    def test_sample_posterior_requires_imputer(self) -> None:
        with pytest.raises(RuntimeError, match="no data imputer"):
            simulated_hmm(1, 10).sample_posterior()


class TestHmmDataImputer:
    """Tests for hidden state imputation."""

    def test_invalid_workers(self) -> None:
        with pytest.raises(ValueError, match="n_workers"):
            HmmDataImputer(simulated_hmm(1, 10), n_workers=0)

    def test_components_need_suf(self) -> None:
        components = [
            CompositeEmMixtureComponent([GaussianModel()]),
            CompositeEmMixtureComponent([GaussianModel()]),
        ]
        hmm = HiddenMarkovModel(MarkovModel(Q), components)
        with pytest.raises(ValueError, match="sufficient statistic"):
            HmmDataImputer(hmm)

    @pytest.mark.parametrize("n_workers", [1, 2, 8])
    def test_counts(self, n_workers) -> None:
        """Imputed statistics account for every stream and observation."""
        hmm = simulated_hmm(5, 40, seed=5)
        imputer = HmmDataImputer(hmm, n_workers=n_workers, seed=6)
        imputer.draw()

        assert_allclose(hmm.markov.suf.init.sum(), 5)
        assert_allclose(hmm.markov.suf.trans.sum(), 5 * 39)
        assert_allclose(sum(c.suf.n for c in hmm.components), 200)
        assert_allclose(imputer.loglike, hmm.loglike())
        assert imputer.logpri() == 0.0

    def test_draw_replaces_previous_statistics(self) -> None:
        hmm = simulated_hmm(2, 30, seed=7)
        imputer = HmmDataImputer(hmm, seed=8)
        imputer.draw()
        imputer.draw()

        assert_allclose(hmm.markov.suf.trans.sum(), 2 * 29)

    def test_threaded_draw_is_reproducible(self) -> None:
        results = []
        for _ in range(2):
            hmm = simulated_hmm(6, 30, seed=9)
            HmmDataImputer(hmm, n_workers=3, seed=10).draw()
            results.append(hmm.markov.suf.to_vector())

        assert_array_equal(results[0], results[1])

    def test_gibbs_sweep(self) -> None:
        hmm = simulated_hmm(seed=11)
        hmm.set_method(HmmDataImputer(hmm, n_workers=2, seed=12))
        hmm.markov.set_method(
            MarkovConjSampler(hmm.markov, ProductDirichletModel.symmetric(2), seed=13)
        )
        for i, c in enumerate(hmm.components):
            c.set_method(GaussianConjSampler(c, kappa=0.01, seed=14 + i))

        means = []
        for i in range(100):
            hmm.sample_posterior()
            if i >= 20:
                means.append(sorted(c.mu for c in hmm.components))

        assert_allclose(np.mean(means, axis=0), [-2.0, 2.0], atol=0.2)
        assert np.isfinite(hmm.logpri())
