"""
Unit tests for Poisson point processes.

Tests cover:
- Observation windows and calendar helpers
- Homogeneous and cosine-rate processes, simulation by thinning
- Weekly-cycle exposure accounting and maximum likelihood
- The Gamma posterior for a homogeneous rate
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose
from scipy import integrate

from bayesgibbs.models.gamma import GammaModel
from bayesgibbs.models.point_process import (
    CosinePoissonProcess,
    HomogeneousPoissonProcess,
    PointProcess,
    WeeklyCyclePoissonProcess,
    WeeklyCyclePoissonSuf,
    day_of_week,
    hour_of_day,
)
from bayesgibbs.inference.poisson_samplers import PoissonProcessGammaSampler


DAILY_PATTERN = np.array([1.0, 1.0, 1.0, 1.0, 1.0, 1.5, 0.5])
WEEKDAY_PATTERN = 1.0 + 0.5 * np.sin(2 * np.pi * np.arange(24) / 24)


class TestPointProcess:
    """Tests for event windows."""

    def test_construction(self) -> None:
        process = PointProcess(0.0, 2.0, [1.5, 0.5])

        assert process.number_of_events == 2
        assert process.window_duration == 2.0
        assert_allclose(process.events, [0.5, 1.5])

    def test_invalid_windows(self) -> None:
        with pytest.raises(ValueError, match="Window end"):
            PointProcess(2.0, 1.0)
        with pytest.raises(ValueError, match="inside the observation window"):
            PointProcess(0.0, 1.0, [1.5])
        with pytest.raises(ValueError, match="outside"):
            PointProcess(0.0, 1.0).add_event(2.0)

    def test_append(self) -> None:
        first = PointProcess(0.0, 1.0, [0.2])
        second = PointProcess(1.0, 3.0, [2.5])

        assert first.adjoins(second)
        first.append(second)
        assert first.end == 3.0
        assert_allclose(first.events, [0.2, 2.5])
        with pytest.raises(ValueError, match="adjoining"):
            first.append(PointProcess(5.0, 6.0))

    def test_calendar(self) -> None:
        """The epoch falls on a Thursday."""
        assert day_of_week(0.0) == 3
        assert day_of_week(4.2) == 0
        assert day_of_week(-1.0) == 2
        assert hour_of_day(0.5) == 12
        assert hour_of_day(3.0 + 23.5 / 24) == 23


class TestHomogeneousPoissonProcess:
    """Tests for the constant-rate process."""

    def test_suf_and_mle(self) -> None:
        model = HomogeneousPoissonProcess(1.0)
        model.add_data(PointProcess(0.0, 2.0, [0.1, 0.5, 1.9]))
        model.add_data(PointProcess(5.0, 7.0, [6.0]))

        assert model.suf.number_of_events == 4
        assert model.suf.exposure == 4.0
        model.mle()
        assert_allclose(model.lam, 1.0)
        assert_allclose(model.loglike(), 4 * np.log(1.0) - 4.0)

    def test_mle_without_events_keeps_rate(self) -> None:
        model = HomogeneousPoissonProcess(2.0)
        model.add_data(PointProcess(0.0, 1.0))
        model.mle()

        assert model.lam == 2.0

    def test_logp(self) -> None:
        model = HomogeneousPoissonProcess(3.0)
        process = PointProcess(0.0, 2.0, [0.5, 1.0])

        assert_allclose(model.logp(process), 2 * np.log(3.0) - 6.0)
        assert_allclose(model.pdf(process), np.exp(2 * np.log(3.0) - 6.0))

    def test_simulate(self) -> None:
        process = HomogeneousPoissonProcess(5.0).simulate(np.random.default_rng(0), 10.0, 210.0)

        assert abs(process.number_of_events - 1000) < 120
        assert process.begin == 10.0
        assert np.all(np.diff(process.events) >= 0)

    def test_invalid_rate(self) -> None:
        with pytest.raises(ValueError, match="positive"):
            HomogeneousPoissonProcess(0.0)


class TestCosinePoissonProcess:
    """Tests for the cosine-rate process."""

    def test_expected_events_is_rate_integral(self) -> None:
        model = CosinePoissonProcess(2.0, 3.0)
        numeric, _ = integrate.quad(model.event_rate, 0.4, 5.3)

        assert_allclose(model.expected_number_of_events(0.4, 5.3), numeric, rtol=1e-8)

    def test_thinning(self) -> None:
        model = CosinePoissonProcess(4.0, 1.0)
        rng = np.random.default_rng(1)
        counts = [model.simulate(rng, 0.0, 3.0).number_of_events for _ in range(2000)]
        expected = model.expected_number_of_events(0.0, 3.0)

        assert_allclose(np.mean(counts), expected, rtol=0.03)


class TestWeeklyCycle:
    """Tests for the day-of-week by hour-of-day process."""

    def truth(self) -> WeeklyCyclePoissonProcess:
        model = WeeklyCyclePoissonProcess()
        model.set_average_daily_rate(60.0)
        model.set_day_of_week_pattern(DAILY_PATTERN)
        model.set_weekday_hourly_pattern(WEEKDAY_PATTERN)
        return model

    def test_exposure_sums_to_window(self) -> None:
        suf = WeeklyCyclePoissonSuf()
        suf.add_exposure_window(0.3, 2.71)

        assert_allclose(suf.exposure.sum(), 2.41)
        assert np.all(suf.exposure <= 1.0 / 24 + 1e-12)

    def test_exposure_inside_one_hour(self) -> None:
        suf = WeeklyCyclePoissonSuf()
        suf.add_exposure_window(0.01, 0.02)

        assert_allclose(suf.exposure[3, 0], 0.01)
        assert_allclose(suf.exposure.sum(), 0.01)

    def test_events_by_cell(self) -> None:
        suf = WeeklyCyclePoissonSuf()
        suf.update(PointProcess(0.0, 7.0, [0.5, 2.25, 2.26, 4.9]))

        assert suf.count[3, 12] == 1
        assert suf.count[5, 6] == 2
        assert_allclose(suf.daily_event_count(), [1, 0, 0, 1, 0, 2, 0])
        assert suf.weekend_hourly_event_count().sum() == 2
        assert suf.weekday_hourly_event_count().sum() == 2
        assert_allclose(suf.exposure.sum(), 7.0)

    def test_invalid_pattern(self) -> None:
        model = WeeklyCyclePoissonProcess()
        with pytest.raises(ValueError, match="sum to 7"):
            model.set_day_of_week_pattern(np.ones(7) * 2)
        with pytest.raises(ValueError, match="24 non-negative"):
            model.set_weekday_hourly_pattern(np.ones(23))

    def test_rates(self) -> None:
        model = self.truth()
        # Saturday 06:30
        t = 2.0 + 6.5 / 24

        assert_allclose(model.event_rate(t), 60.0 * 1.5 * 1.0)
        assert_allclose(model.rate_table()[0], 60.0 * WEEKDAY_PATTERN)
        assert_allclose(model.max_event_rate(0.0, 7.0), model.rate_table().max())
        assert_allclose(model.expected_number_of_events(0.0, 14.0), 14 * 60.0)

    def test_mle(self) -> None:
        truth = self.truth()
        data = truth.simulate(np.random.default_rng(2), 0.0, 28.0)
        truth.add_data(data)
        model = WeeklyCyclePoissonProcess()
        model.add_data(data)

        loglike = model.mle()
        assert_allclose(model.day_of_week_pattern.sum(), 7.0)
        assert_allclose(model.weekday_hourly_pattern.sum(), 24.0)
        assert_allclose(model.weekend_hourly_pattern.sum(), 24.0)
        assert loglike >= truth.loglike() - 1e-3
        assert_allclose(model.average_daily_rate, 60.0, rtol=0.1)


class TestPoissonProcessGammaSampler:
    """Tests for the conjugate rate sampler."""

    def setup_method(self) -> None:
        self.process = HomogeneousPoissonProcess(1.0)
        self.process.add_data(PointProcess(0.0, 4.0, np.linspace(0.1, 3.9, 10)))
        self.prior = GammaModel(2.0, 1.0)
        self.sampler = PoissonProcessGammaSampler(self.process, self.prior, seed=3)

    def test_posterior_parameters(self) -> None:
        assert_allclose(self.sampler.posterior_parameters(), (12.0, 5.0))

    def test_draws(self) -> None:
        draws = []
        for _ in range(4000):
            self.sampler.draw()
            draws.append(self.process.lam)

        assert_allclose(np.mean(draws), 12.0 / 5.0, atol=0.05)
        assert_allclose(self.sampler.logpri(), self.prior.logp(self.process.lam))

    def test_mode(self) -> None:
        self.sampler.find_posterior_mode()

        assert_allclose(self.process.lam, 11.0 / 5.0)
