"""
Poisson point processes on a continuous time line.

Time is measured in days since 1970-01-01 00:00. Day index 0 is Monday, so
the epoch itself falls on day index 3 (Thursday).

A Poisson process with rate λ(t) observed on a window [t0, t1] with events
at τ_1 < … < τ_n has log likelihood
    Σ_i log λ(τ_i) - Λ(t0, t1),   Λ(t0, t1) = ∫_{t0}^{t1} λ(t) dt
Inhomogeneous processes simulate by thinning a homogeneous process whose
rate bounds λ(t) on the window.
"""

import logging
from abc import abstractmethod
from typing import Iterable, List, Optional
import numpy as np
from numpy.typing import NDArray

from bayesgibbs.models.base import LoglikeModel, Model, SufficientStatistic
from bayesgibbs.models.params import Params, UnivParams, VectorParams, VectorSource, as_iterator, take

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 24
DAYS_PER_WEEK = 7
EPOCH_DAY_OF_WEEK = 3
WEEKEND_DAYS = (5, 6)


def day_of_week(t: float) -> int:
    """Day index (Monday = 0) of time t in days since the epoch."""
    return int((np.floor(t) + EPOCH_DAY_OF_WEEK) % DAYS_PER_WEEK)


def hour_of_day(t: float) -> int:
    """Hour of the day (0-23) of time t in days since the epoch."""
    return int(np.floor((t - np.floor(t)) * HOURS_PER_DAY)) % HOURS_PER_DAY


class PointProcess:
    """
    Event times observed over a window.

    Attributes
    ----------
    begin, end : float
        Observation window, in days since the epoch.
    events : NDArray[np.float64]
        Sorted event times inside [begin, end].
    """

    def __init__(
        self,
        begin: float,
        end: float,
        events: Optional[Iterable[float]] = None,
    ) -> None:
        if end < begin:
            raise ValueError(f"Window end ({end}) precedes its beginning ({begin})")
        self.begin = float(begin)
        self.end = float(end)
        events = np.sort(np.asarray([] if events is None else list(events), dtype=np.float64))
        if len(events) and (events[0] < self.begin or events[-1] > self.end):
            raise ValueError("All events must lie inside the observation window")
        self.events = events

    @property
    def number_of_events(self) -> int:
        """Number of events in the window."""
        return len(self.events)

    @property
    def window_duration(self) -> float:
        """Length of the observation window in days."""
        return self.end - self.begin

    def arrival_time(self, i: int) -> float:
        """
        Time of the i-th event.

        Parameters
        ----------
        i : int
            Event index in time order. Negative indices count from the end.

        Returns
        -------
        float
            Event time in days since the epoch.

        Raises
        ------
        IndexError
            If there is no i-th event.
        """
        return float(self.events[i])

    def add_event(self, t: float) -> "PointProcess":
        """
        Insert an event, keeping the times sorted.

        Parameters
        ----------
        t : float
            Event time, inside [begin, end].

        Returns
        -------
        PointProcess
            self, so calls can be chained.

        Raises
        ------
        ValueError
            If t lies outside the observation window.
        """
        if not self.begin <= t <= self.end:
            raise ValueError(f"Event at {t} outside [{self.begin}, {self.end}]")
        self.events = np.sort(np.append(self.events, t))
        return self

    def immediately_follows(self, other: "PointProcess") -> bool:
        """True if this window starts where other ends."""
        return self.begin == other.end

    def immediately_precedes(self, other: "PointProcess") -> bool:
        """True if this window ends where other starts."""
        return self.end == other.begin

    def adjoins(self, other: "PointProcess") -> bool:
        """True if the two windows share an endpoint."""
        return self.immediately_follows(other) or self.immediately_precedes(other)

    def append(self, other: "PointProcess") -> "PointProcess":
        """Extend the window with an adjoining process."""
        if not self.adjoins(other):
            raise ValueError("Only adjoining point processes can be appended")
        self.begin = min(self.begin, other.begin)
        self.end = max(self.end, other.end)
        self.events = np.sort(np.concatenate([self.events, other.events]))
        return self

    def __repr__(self) -> str:
        return (
            f"PointProcess(begin={self.begin:.4f}, end={self.end:.4f}, "
            f"events={self.number_of_events})"
        )


class PoissonProcess(Model):
    """Base class for Poisson processes with PointProcess data."""

    @abstractmethod
    def event_rate(self, t: float) -> float:
        """Instantaneous event rate (events per day) at t."""

    @abstractmethod
    def expected_number_of_events(self, t0: float, t1: float) -> float:
        """Λ(t0, t1)."""

    @abstractmethod
    def add_exposure_window(self, t0: float, t1: float) -> None:
        """Record that the process was observed on [t0, t1]."""

    @abstractmethod
    def add_event(self, t: float) -> None:
        """Record an event at t."""

    def max_event_rate(self, t0: float, t1: float) -> float:
        """Upper bound on event_rate over [t0, t1], used for thinning."""
        raise NotImplementedError

    def add_data(self, process: PointProcess) -> None:
        """Store a process and record its window and events."""
        self._data.append(process)
        self.add_exposure_window(process.begin, process.end)
        for t in process.events:
            self.add_event(float(t))

    def logp(self, process: PointProcess) -> float:
        """
        Log likelihood of one observed process.

        Returns
        -------
        float
            Σ log λ(τ_i) - Λ(begin, end), or -inf if the rate vanishes at an
            observed event.
        """
        rates = np.array([self.event_rate(float(t)) for t in process.events])
        if np.any(rates <= 0):
            return -np.inf
        return float(
            np.log(rates).sum()
            - self.expected_number_of_events(process.begin, process.end)
        )

    def pdf(self, process: PointProcess, logscale: bool = False) -> float:
        ans = self.logp(process)
        return ans if logscale else float(np.exp(ans))

    def simulate(self, rng: np.random.Generator, t0: float, t1: float) -> PointProcess:
        """Simulate on [t0, t1] by thinning."""
        bound = self.max_event_rate(t0, t1)
        events = []
        if bound > 0:
            t = t0 + rng.exponential(1.0 / bound)
            while t <= t1:
                if rng.uniform() * bound < self.event_rate(t):
                    events.append(t)
                t += rng.exponential(1.0 / bound)
        return PointProcess(t0, t1, events)


class PoissonProcessSuf(SufficientStatistic):
    """{number of events, exposure time}. Vector layout [events, exposure]."""

    def __init__(self, number_of_events: float = 0.0, exposure: float = 0.0) -> None:
        self.number_of_events = float(number_of_events)
        self.exposure = float(exposure)

    def clear(self) -> None:
        self.number_of_events = self.exposure = 0.0

    def update(self, process: PointProcess) -> None:
        self.update_with_weight(process, 1.0)

    def update_with_weight(self, process: PointProcess, prob: float) -> None:
        self.number_of_events += prob * process.number_of_events
        self.exposure += prob * process.window_duration

    def add_exposure_window(self, t0: float, t1: float) -> None:
        """Add t1 - t0 days of exposure."""
        self.exposure += t1 - t0

    def add_event(self, t: float) -> None:
        """Count one event; the time itself is not needed."""
        self.number_of_events += 1.0

    def combine(self, other: "PoissonProcessSuf") -> None:
        self._check_same_type(other)
        self.number_of_events += other.number_of_events
        self.exposure += other.exposure

    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        return np.array([self.number_of_events, self.exposure])

    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        self.number_of_events, self.exposure = (float(v) for v in take(values, 2))

    def __repr__(self) -> str:
        return f"PoissonProcessSuf(events={self.number_of_events:g}, exposure={self.exposure:.4g})"


class HomogeneousPoissonProcess(PoissonProcess, LoglikeModel):
    """Poisson process with constant rate λ events per day."""

    def __init__(self, lam: float = 1.0) -> None:
        super().__init__()
        if lam <= 0:
            raise ValueError(f"Event rate must be positive. Got {lam}")
        self.lam_prm = UnivParams(lam)
        self.suf = PoissonProcessSuf()

    def params(self) -> List[Params]:
        return [self.lam_prm]

    @property
    def lam(self) -> float:
        """Event rate λ, events per day."""
        return self.lam_prm.value

    def set_lam(self, lam: float) -> None:
        """
        Set the event rate.

        Parameters
        ----------
        lam : float
            Events per day.

        Raises
        ------
        ValueError
            If lam is not positive.
        """
        if lam <= 0:
            raise ValueError(f"Event rate must be positive. Got {lam}")
        self.lam_prm.set(lam)

    def event_rate(self, t: float) -> float:
        return self.lam

    def max_event_rate(self, t0: float, t1: float) -> float:
        return self.lam

    def expected_number_of_events(self, t0: float, t1: float) -> float:
        return self.lam * (t1 - t0)

    def add_exposure_window(self, t0: float, t1: float) -> None:
        self.suf.add_exposure_window(t0, t1)

    def add_event(self, t: float) -> None:
        self.suf.add_event(t)

    def add_data(self, process: PointProcess) -> None:
        self._data.append(process)
        self.suf.update(process)

    def loglike(self) -> float:
        return float(self.suf.number_of_events * np.log(self.lam) - self.lam * self.suf.exposure)

    def mle(self) -> None:
        """λ = events / exposure. Leaves λ alone when there are no events."""
        if self.suf.exposure > 0 and self.suf.number_of_events > 0:
            self.set_lam(self.suf.number_of_events / self.suf.exposure)

    def __repr__(self) -> str:
        return f"HomogeneousPoissonProcess(lam={self.lam:.4g})"


class CosinePoissonProcess(PoissonProcess):
    """
    Inhomogeneous process with rate λ (1 + cos(f t)).

    Mainly useful for testing code that handles inhomogeneous processes.
    Adding data is a no-op.
    """

    def __init__(self, lam: float = 1.0, frequency: float = 1.0) -> None:
        super().__init__()
        if lam <= 0 or frequency <= 0:
            raise ValueError("Rate and frequency must be positive")
        self.lam_prm = UnivParams(lam)
        self.frequency_prm = UnivParams(frequency)

    def params(self) -> List[Params]:
        return [self.lam_prm, self.frequency_prm]

    @property
    def lam(self) -> float:
        """Rate scale λ. The rate averages λ per day."""
        return self.lam_prm.value

    @property
    def frequency(self) -> float:
        """Angular frequency f of the cosine, radians per day."""
        return self.frequency_prm.value

    def event_rate(self, t: float) -> float:
        return float(self.lam * (1.0 + np.cos(self.frequency * t)))

    def max_event_rate(self, t0: float, t1: float) -> float:
        return 2.0 * self.lam

    def expected_number_of_events(self, t0: float, t1: float) -> float:
        f = self.frequency
        return float(self.lam * ((t1 - t0) + (np.sin(f * t1) - np.sin(f * t0)) / f))

    def add_exposure_window(self, t0: float, t1: float) -> None:
        pass

    def add_event(self, t: float) -> None:
        pass

    def __repr__(self) -> str:
        return f"CosinePoissonProcess(lam={self.lam:.4g}, frequency={self.frequency:.4g})"


class WeeklyCyclePoissonSuf(SufficientStatistic):
    """
    Event counts and exposure by (day of week, hour of day).

    Exposure in each cell is measured in days. Vector layout: count
    (7 x 24, row-major), then exposure.
    """

    def __init__(self) -> None:
        self.clear()

    def clear(self) -> None:
        self.count = np.zeros((DAYS_PER_WEEK, HOURS_PER_DAY))
        self.exposure = np.zeros((DAYS_PER_WEEK, HOURS_PER_DAY))

    def add_exposure_window(self, t0: float, t1: float, prob: float = 1.0) -> None:
        """
        Spread the window [t0, t1] over the (day, hour) cells it covers.

        Parameters
        ----------
        t0, t1 : float
            Window boundaries in days since the epoch.
        prob : float
            Weight applied to the exposure, for EM.
        """
        # Walk whole hours by index; float hour boundaries can stall.
        hour = int(np.floor(t0 * HOURS_PER_DAY))
        while True:
            start = max(t0, hour / HOURS_PER_DAY)
            stop = min(t1, (hour + 1) / HOURS_PER_DAY)
            if start >= t1:
                break
            if stop > start:
                day = (hour // HOURS_PER_DAY + EPOCH_DAY_OF_WEEK) % DAYS_PER_WEEK
                self.exposure[day, hour % HOURS_PER_DAY] += prob * (stop - start)
            hour += 1

    def add_event(self, t: float, prob: float = 1.0) -> None:
        """Add prob to the count of the cell containing t."""
        self.count[day_of_week(t), hour_of_day(t)] += prob

    def update(self, process: PointProcess) -> None:
        self.update_with_weight(process, 1.0)

    def update_with_weight(self, process: PointProcess, prob: float) -> None:
        self.add_exposure_window(process.begin, process.end, prob)
        for t in process.events:
            self.add_event(float(t), prob)

    def combine(self, other: "WeeklyCyclePoissonSuf") -> None:
        self._check_same_type(other)
        self.count += other.count
        self.exposure += other.exposure

    def daily_event_count(self) -> NDArray[np.float64]:
        """Events on each day of the week, Monday first."""
        return self.count.sum(axis=1)

    def weekday_hourly_event_count(self) -> NDArray[np.float64]:
        """Events in each hour of the day, summed over Monday to Friday."""
        return self.count[:5].sum(axis=0)

    def weekend_hourly_event_count(self) -> NDArray[np.float64]:
        """Events in each hour of the day, summed over the weekend."""
        return self.count[5:].sum(axis=0)

    def to_vector(self, minimal: bool = True) -> NDArray[np.float64]:
        return np.concatenate([self.count.ravel(), self.exposure.ravel()])

    def from_vector(self, values: VectorSource, minimal: bool = True) -> None:
        it = as_iterator(values)
        shape = (DAYS_PER_WEEK, HOURS_PER_DAY)
        self.count = take(it, self.count.size).reshape(shape)
        self.exposure = take(it, self.exposure.size).reshape(shape)

    def __repr__(self) -> str:
        return f"WeeklyCyclePoissonSuf(events={self.count.sum():g})"


class WeeklyCyclePoissonProcess(PoissonProcess, LoglikeModel):
    """
    Poisson process with day-of-week and hour-of-day cycles.

    The rate (events per day) on day d at hour h is
        λ δ_d η_h
    with λ the average daily rate, δ a day-of-week pattern summing to 7,
    and η the weekday or weekend hourly pattern, each summing to 24.
    """

    def __init__(self) -> None:
        super().__init__()
        self.average_daily_rate_prm = UnivParams(1.0)
        self.day_of_week_pattern_prm = VectorParams(np.ones(DAYS_PER_WEEK))
        self.weekday_hourly_pattern_prm = VectorParams(np.ones(HOURS_PER_DAY))
        self.weekend_hourly_pattern_prm = VectorParams(np.ones(HOURS_PER_DAY))
        self.suf = WeeklyCyclePoissonSuf()

    def params(self) -> List[Params]:
        return [
            self.average_daily_rate_prm,
            self.day_of_week_pattern_prm,
            self.weekday_hourly_pattern_prm,
            self.weekend_hourly_pattern_prm,
        ]

    @property
    def average_daily_rate(self) -> float:
        """Average number of events per day, λ."""
        return self.average_daily_rate_prm.value

    @property
    def day_of_week_pattern(self) -> NDArray[np.float64]:
        """Relative daily rates δ, Monday first, summing to 7."""
        return self.day_of_week_pattern_prm.value

    @property
    def weekday_hourly_pattern(self) -> NDArray[np.float64]:
        """Hourly pattern η for Monday to Friday, summing to 24."""
        return self.weekday_hourly_pattern_prm.value

    @property
    def weekend_hourly_pattern(self) -> NDArray[np.float64]:
        return self.weekend_hourly_pattern_prm.value

    def set_average_daily_rate(self, lam: float) -> None:
        """
        Set λ.

        Raises
        ------
        ValueError
            If lam is not positive.
        """
        if lam <= 0:
            raise ValueError(f"Event rate must be positive. Got {lam}")
        self.average_daily_rate_prm.set(lam)

    @staticmethod
    def _check_pattern(pattern: NDArray[np.float64], total: int) -> NDArray[np.float64]:
        pattern = np.asarray(pattern, dtype=np.float64)
        if len(pattern) != total or np.any(pattern < 0):
            raise ValueError(f"Pattern must have {total} non-negative entries")
        if not np.isclose(pattern.sum(), total):
            raise ValueError(f"Pattern must sum to {total}. Got {pattern.sum()}")
        return pattern

    def set_day_of_week_pattern(self, pattern: NDArray[np.float64]) -> None:
        """
        Set the day-of-week pattern.

        Parameters
        ----------
        pattern : NDArray[np.float64]
            Seven non-negative values, Monday first, summing to 7.

        Raises
        ------
        ValueError
            If the length, sign or total is wrong.
        """
        self.day_of_week_pattern_prm.set(self._check_pattern(pattern, DAYS_PER_WEEK))

    def set_weekday_hourly_pattern(self, pattern: NDArray[np.float64]) -> None:
        """
        Set the hourly pattern for Monday to Friday.

        Parameters
        ----------
        pattern : NDArray[np.float64]
            24 non-negative values, midnight first, summing to 24.

        Raises
        ------
        ValueError
            If the length, sign or total is wrong.
        """
        self.weekday_hourly_pattern_prm.set(self._check_pattern(pattern, HOURS_PER_DAY))

    def set_weekend_hourly_pattern(self, pattern: NDArray[np.float64]) -> None:
        """Set the hourly pattern for Saturday and Sunday. Same rules as the weekday pattern."""
        self.weekend_hourly_pattern_prm.set(self._check_pattern(pattern, HOURS_PER_DAY))

    def hourly_pattern(self, day: int) -> NDArray[np.float64]:
        """Hourly pattern that applies on day (Monday = 0)."""
        if day in WEEKEND_DAYS:
            return self.weekend_hourly_pattern
        return self.weekday_hourly_pattern

    def rate_table(self) -> NDArray[np.float64]:
        """Event rate for every (day, hour) cell, shape (7, 24)."""
        hourly = np.vstack([self.hourly_pattern(d) for d in range(DAYS_PER_WEEK)])
        return self.average_daily_rate * self.day_of_week_pattern[:, np.newaxis] * hourly

    def event_rate(self, t: float) -> float:
        d = day_of_week(t)
        return float(
            self.average_daily_rate
            * self.day_of_week_pattern[d]
            * self.hourly_pattern(d)[hour_of_day(t)]
        )

    def max_event_rate(self, t0: float, t1: float) -> float:
        return float(self.rate_table().max())

    def expected_number_of_events(self, t0: float, t1: float) -> float:
        exposure = WeeklyCyclePoissonSuf()
        exposure.add_exposure_window(t0, t1)
        return float(np.sum(self.rate_table() * exposure.exposure))

    def add_exposure_window(self, t0: float, t1: float) -> None:
        self.suf.add_exposure_window(t0, t1)

    def add_event(self, t: float) -> None:
        self.suf.add_event(t)

    def loglike(self) -> float:
        rates = self.rate_table()
        count, exposure = self.suf.count, self.suf.exposure
        with np.errstate(divide="ignore", invalid="ignore"):
            event_terms = np.where(count > 0, count * np.log(rates), 0.0)
        return float(event_terms.sum() - np.sum(rates * exposure))

    # ---- maximum likelihood: cyclic conditional maximization ----
    def _maximize_average_daily_rate(self) -> None:
        expected = np.sum(self.rate_table() * self.suf.exposure) / self.average_daily_rate
        if expected > 0 and self.suf.count.sum() > 0:
            self.set_average_daily_rate(self.suf.count.sum() / expected)

    def _maximize_daily_pattern(self) -> None:
        lam = self.average_daily_rate
        delta = self.day_of_week_pattern.copy()
        for d in range(DAYS_PER_WEEK):
            denominator = lam * np.dot(self.suf.exposure[d], self.hourly_pattern(d))
            if denominator > 0:
                delta[d] = self.suf.count[d].sum() / denominator
        total = delta.sum()
        if total > 0:
            # Rescale to sum to 7, absorbing the scale into λ.
            self.set_average_daily_rate(lam * total / DAYS_PER_WEEK)
            self.set_day_of_week_pattern(delta * DAYS_PER_WEEK / total)

    def _maximize_hourly_pattern(self, weekend: bool) -> None:
        days = list(WEEKEND_DAYS) if weekend else [d for d in range(DAYS_PER_WEEK) if d not in WEEKEND_DAYS]
        lam = self.average_daily_rate
        delta = self.day_of_week_pattern
        current = self.weekend_hourly_pattern if weekend else self.weekday_hourly_pattern
        eta = current.copy()
        counts = self.suf.count[days].sum(axis=0)
        denominators = lam * (delta[days][:, np.newaxis] * self.suf.exposure[days]).sum(axis=0)
        positive = denominators > 0
        eta[positive] = counts[positive] / denominators[positive]
        total = eta.sum()
        if total <= 0:
            return
        scale = total / HOURS_PER_DAY
        eta = eta / scale
        # Push the scale into the daily pattern of the affected days.
        delta = delta.copy()
        delta[days] *= scale
        self.set_average_daily_rate(lam * delta.sum() / DAYS_PER_WEEK)
        self.set_day_of_week_pattern(delta * DAYS_PER_WEEK / delta.sum())
        if weekend:
            self.set_weekend_hourly_pattern(eta)
        else:
            self.set_weekday_hourly_pattern(eta)

    def mle(self, max_iterations: int = 200, tolerance: float = 1e-8) -> float:
        """
        Maximize the likelihood one block at a time.

        Returns
        -------
        float
            Final log likelihood.
        """
        if self.suf.count.sum() <= 0:
            return self.loglike()
        previous = self.loglike()
        for _ in range(max_iterations):
            self._maximize_average_daily_rate()
            self._maximize_daily_pattern()
            self._maximize_hourly_pattern(weekend=False)
            self._maximize_hourly_pattern(weekend=True)
            current = self.loglike()
            if abs(current - previous) < tolerance:
                return current
            previous = current
        logger.warning("WeeklyCyclePoissonProcess MLE did not converge in %d iterations", max_iterations)
        return previous

    def __repr__(self) -> str:
        return f"WeeklyCyclePoissonProcess(rate={self.average_daily_rate:.4g})"
