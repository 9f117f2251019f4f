"""
Unit tests for the Markov chain model and its conjugate sampler.

Tests cover:
- Initialization and validation
- Stationary distribution, durations, n-step distributions
- Simulation
- Transition count statistics and MLE
- Dirichlet conjugate draws and posterior mode
"""

import pytest
import numpy as np
from numpy.testing import assert_array_almost_equal, assert_allclose, assert_array_equal

from bayesgibbs.models.markov import MarkovModel, MarkovSuf
from bayesgibbs.models.dirichlet import DirichletModel, ProductDirichletModel
from bayesgibbs.inference.markov_sampler import MarkovConjSampler


class TestMarkovModelInitialization:
    """Tests for MarkovModel initialization and validation."""

    def test_valid_2x2_matrix(self) -> None:
        """Test initialization with valid 2x2 transition matrix."""
        Q = np.array([
            [0.9, 0.1],
            [0.2, 0.8]
        ])
        mc = MarkovModel(Q)
        assert mc.state_space_size == 2
        assert_array_almost_equal(mc.Q, Q)
        assert_allclose(mc.pi0, [0.5, 0.5])

    def test_uniform_from_size(self) -> None:
        """Test that a state space size alone gives a uniform chain."""
        mc = MarkovModel(state_space_size=3)
        assert_allclose(mc.Q, np.full((3, 3), 1 / 3))

    def test_non_square_matrix_raises_error(self) -> None:
        """Test that non-square matrices raise ValueError."""
        Q = np.array([
            [0.5, 0.5, 0.0],
            [0.3, 0.7, 0.0]
        ])
        with pytest.raises(ValueError, match="must be square"):
            MarkovModel(Q)

    def test_negative_probabilities_raise_error(self) -> None:
        """Test that probabilities outside [0, 1] raise ValueError."""
        Q = np.array([
            [1.1, -0.1],
            [0.1, 0.9]
        ])
        with pytest.raises(ValueError, match="must be in \\[0, 1\\]"):
            MarkovModel(Q)

    def test_non_stochastic_rows_raise_error(self) -> None:
        """Test that rows not summing to 1 raise ValueError."""
        Q = np.array([
            [0.9, 0.05],
            [0.2, 0.8]
        ])
        with pytest.raises(ValueError, match="sum to 1"):
            MarkovModel(Q)

    def test_validation_disabled(self) -> None:
        """Test that validation can be disabled."""
        Q = np.array([
            [0.9, 0.05],
            [0.2, 0.8]
        ])
        mc = MarkovModel(Q, validate=False)
        assert mc.state_space_size == 2


class TestChainProperties:
    """Tests for stationary distribution, durations and n-step distributions."""

    def test_stationary_dist_2_state(self) -> None:
        """Known solution: Q = [[0.9, 0.1], [0.2, 0.8]] gives π = [2/3, 1/3]."""
        mc = MarkovModel(np.array([[0.9, 0.1], [0.2, 0.8]]))
        assert_allclose(mc.stationary_distribution(), [2 / 3, 1 / 3], atol=1e-6)

    def test_stationary_dist_satisfies_invariance(self) -> None:
        """Test that π Q = π."""
        Q = np.array([[0.7, 0.3], [0.4, 0.6]])
        pi = MarkovModel(Q).stationary_distribution()
        assert_allclose(pi @ Q, pi, atol=1e-10)

    def test_expected_durations(self) -> None:
        """E[duration] = 1 / (1 - Q_ii)."""
        mc = MarkovModel(np.array([[0.9, 0.1], [0.2, 0.8]]))
        assert_allclose(mc.expected_durations(), [10.0, 5.0], atol=1e-6)

    def test_absorbing_state_raises_error(self) -> None:
        """Test that an absorbing state raises ValueError."""
        mc = MarkovModel(np.array([[1.0, 0.0], [0.5, 0.5]]))
        with pytest.raises(ValueError, match="absorbing"):
            mc.expected_duration(0)

    def test_n_step_distribution(self) -> None:
        """One step from state 0 is row 0; many steps reach stationarity."""
        Q = np.array([[0.8, 0.2], [0.3, 0.7]])
        mc = MarkovModel(Q)
        start = np.array([1.0, 0.0])
        assert_allclose(mc.n_step_distribution(1, start), Q[0], atol=1e-10)
        assert_allclose(
            mc.n_step_distribution(1000, start), mc.stationary_distribution(), atol=1e-4
        )

    def test_fix_pi0_stationary(self) -> None:
        """fix_pi0_stationary installs the stationary distribution."""
        mc = MarkovModel(np.array([[0.9, 0.1], [0.2, 0.8]]))
        mc.free_pi0()
        mc.fix_pi0_stationary()
        assert mc.pi0_fixed
        assert_allclose(mc.pi0, [2 / 3, 1 / 3], atol=1e-6)


class TestSimulation:
    """Tests for path simulation."""

    def test_simulate_path(self) -> None:
        """Paths have the right length and valid states."""
        mc = MarkovModel(np.array([[0.8, 0.2], [0.3, 0.7]]))
        path = mc.simulate(np.random.default_rng(42), 1000)
        assert len(path) == 1000
        assert np.all((path >= 0) & (path < 2))

    def test_simulate_with_initial_state(self) -> None:
        """A specified initial state is respected."""
        mc = MarkovModel(np.array([[0.8, 0.2], [0.3, 0.7]]))
        path = mc.simulate(np.random.default_rng(42), 10, initial_state=1)
        assert path[0] == 1
        with pytest.raises(ValueError, match="initial_state must be in"):
            mc.simulate(np.random.default_rng(42), 10, initial_state=5)

    def test_simulate_reproducibility(self) -> None:
        """The same seed produces the same path."""
        mc = MarkovModel(np.array([[0.8, 0.2], [0.3, 0.7]]))
        path1 = mc.simulate(np.random.default_rng(42), 100)
        path2 = mc.simulate(np.random.default_rng(42), 100)
        assert_array_equal(path1, path2)


class TestMarkovSuf:
    """Tests for transition count statistics."""

    def test_counts(self) -> None:
        """Transitions and the initial state are counted."""
        suf = MarkovSuf(2)
        suf.update([0, 0, 1, 1, 0])
        assert_array_equal(suf.trans, [[1, 1], [1, 1]])
        assert_array_equal(suf.init, [1, 0])

    def test_out_of_range_state_raises(self) -> None:
        """States outside the state space raise ValueError."""
        with pytest.raises(ValueError, match="States must lie"):
            MarkovSuf(2).update([0, 2])

    def test_combine_equals_union(self) -> None:
        """Combining two statistics equals accumulating both sequences."""
        a, b, both = MarkovSuf(3), MarkovSuf(3), MarkovSuf(3)
        for seq in ([0, 1, 2, 2], [2, 1, 0]):
            both.update(seq)
        a.update([0, 1, 2, 2])
        b.update([2, 1, 0])
        a.combine(b)
        assert_array_equal(a.trans, both.trans)
        assert_array_equal(a.init, both.init)

    def test_vector_round_trip(self) -> None:
        """from_vector restores to_vector output."""
        suf = MarkovSuf(2)
        suf.update([0, 1, 1, 0, 0])
        restored = MarkovSuf(2)
        restored.from_vector(suf.to_vector())
        assert_array_equal(restored.trans, suf.trans)
        assert_array_equal(restored.init, suf.init)

    def test_mle(self) -> None:
        """The MLE is the row-normalized transition counts."""
        mc = MarkovModel(state_space_size=2)
        mc.add_data([0, 0, 0, 1, 1, 0])
        mc.mle()
        assert_allclose(mc.Q, [[2 / 3, 1 / 3], [0.5, 0.5]])

    def test_loglike_matches_logp(self) -> None:
        """With π₀ fixed, loglike is logp minus the initial state term."""
        mc = MarkovModel(np.array([[0.8, 0.2], [0.3, 0.7]]))
        seq = [0, 0, 1, 1, 0]
        mc.add_data(seq)
        assert_allclose(mc.loglike(), mc.logp(seq) - np.log(0.5))


class TestMarkovConjSampler:
    """Tests for the Dirichlet conjugate sampler."""

    def _model(self) -> MarkovModel:
        mc = MarkovModel(state_space_size=2)
        rng = np.random.default_rng(0)
        truth = MarkovModel(np.array([[0.9, 0.1], [0.3, 0.7]]))
        mc.add_data(truth.simulate(rng, 500))
        return mc

    def test_draw_moments(self) -> None:
        """Row draws have the Dirichlet(Nu + N) posterior mean."""
        mc = self._model()
        sampler = MarkovConjSampler(mc, ProductDirichletModel.symmetric(2, 1.0), seed=1)
        mc.set_method(sampler)
        draws = []
        for _ in range(2000):
            mc.sample_posterior()
            draws.append(mc.Q[0, 0])
        counts = mc.suf.trans[0] + 1.0
        assert_allclose(np.mean(draws), counts[0] / counts.sum(), atol=0.005)

    def test_find_posterior_mode(self) -> None:
        """The mode is (Nu + N - 1) / Σ(Nu + N - 1) row by row."""
        mc = self._model()
        sampler = MarkovConjSampler(mc, ProductDirichletModel.symmetric(2, 2.0))
        sampler.find_posterior_mode()
        excess = mc.suf.trans + 1.0
        assert_allclose(mc.Q, excess / excess.sum(axis=1, keepdims=True))

    def test_free_pi0_without_prior_raises(self) -> None:
        """A free π₀ with no prior is a configuration error."""
        mc = self._model()
        sampler = MarkovConjSampler(mc, ProductDirichletModel.symmetric(2))
        mc.free_pi0()
        with pytest.raises(RuntimeError, match="no prior"):
            sampler.draw()

    def test_pi0_prior_frees_pi0(self) -> None:
        """Supplying a π₀ prior frees π₀ and adds its log density."""
        mc = self._model()
        pi0_prior = DirichletModel(np.array([1.0, 1.0]))
        sampler = MarkovConjSampler(mc, ProductDirichletModel.symmetric(2), pi0_prior, seed=2)
        assert not mc.pi0_fixed
        sampler.draw()
        assert_allclose(mc.pi0.sum(), 1.0)
        assert np.isfinite(sampler.logpri())

    def test_dimension_mismatch_raises(self) -> None:
        """Priors must match the state space size."""
        with pytest.raises(ValueError, match="dimension"):
            MarkovConjSampler(MarkovModel(state_space_size=2), ProductDirichletModel.symmetric(3))
