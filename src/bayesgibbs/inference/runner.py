"""
Gibbs sampling runner.

Runs independent chains, each built from a seeded model factory, calls
model.sample_posterior() once per iteration and records named
parameters after burn-in into an arviz.InferenceData.

**Usage:**
```python
def build(rng):
    model = GaussianModel()
    model.set_data(y)
    model.set_method(GaussianConjSampler(model, seed=rng))
    return model

summary = GibbsRunner().sample(build, draws=1000, burn=200, chains=4, random_seed=1)
```
"""

import logging
import time
from typing import Callable, Dict, List, Optional

import arviz as az
import numpy as np
from numpy.typing import NDArray

from bayesgibbs.models.base import Model
from bayesgibbs.inference.diagnostics import DiagnosticsComputer

logger = logging.getLogger(__name__)

ModelFactory = Callable[[np.random.Generator], Model]
TraceFunction = Callable[[Model], NDArray[np.float64]]


class InferenceSummary:
    """Summary statistics from MCMC inference."""

    def __init__(
        self,
        idata,  # arviz.InferenceData
        n_draws: int,
        n_burn: int,
        n_chains: int,
        sampling_time: float,
    ) -> None:
        """
        Initialize inference summary.

        Parameters
        ----------
        idata : arviz.InferenceData
            Recorded draws, one posterior variable per traced name
        n_draws : int
            Number of post-burn-in draws per chain
        n_burn : int
            Number of discarded iterations per chain
        n_chains : int
            Number of independent chains
        sampling_time : float
            Total sampling time (seconds)
        """
        self.idata = idata
        self.n_draws = n_draws
        self.n_burn = n_burn
        self.n_chains = n_chains
        self.sampling_time = sampling_time
        self.total_samples = n_draws * n_chains

    def draws(self, name: str) -> NDArray[np.float64]:
        """Recorded draws of one variable, shape (chains, draws, ...)."""
        return self.idata.posterior[name].values

    def diagnostics(
        self, var_names: Optional[List[str]] = None, **kwargs
    ) -> DiagnosticsComputer:
        """Convergence diagnostics over the recorded draws."""
        return DiagnosticsComputer(self, var_names=var_names, **kwargs)

    def __repr__(self) -> str:
        return (
            f"InferenceSummary(draws={self.n_draws}, burn={self.n_burn}, "
            f"chains={self.n_chains}, time={self.sampling_time:.1f}s)"
        )


def default_trace(model: Model) -> Dict[str, TraceFunction]:
    """Trace every parameter object of the model as theta_0, theta_1, ..."""
    return {
        f"theta_{i}": (lambda m, i=i: m.params()[i].to_vector(minimal=False))
        for i in range(len(model.params()))
    }


class GibbsRunner:
    """
    Run independent Gibbs chains and collect the draws.

    Chain generators are spawned from one SeedSequence so a run is
    reproducible from random_seed alone.
    """

    def __init__(self, record_logpri: bool = True, check_convergence: bool = False) -> None:
        """
        Parameters
        ----------
        record_logpri : bool
            Store model.logpri() for each recorded draw in sample_stats.
        check_convergence : bool
            Log a warning for each variable failing the default Rhat and
            ESS thresholds once sampling finishes.
        """
        self.record_logpri = record_logpri
        self.check_convergence = check_convergence

    def _run_chain(
        self,
        model: Model,
        trace: Dict[str, TraceFunction],
        draws: int,
        burn: int,
    ):
        for _ in range(burn):
            model.sample_posterior()
        values: Dict[str, list] = {name: [] for name in trace}
        logpri = []
        for _ in range(draws):
            model.sample_posterior()
            for name, f in trace.items():
                values[name].append(np.array(f(model), dtype=float))
            if self.record_logpri:
                logpri.append(model.logpri())
        return {k: np.stack(v) for k, v in values.items()}, np.array(logpri)

    def sample(
        self,
        build_model: ModelFactory,
        draws: int = 1000,
        burn: int = 100,
        chains: int = 2,
        random_seed: Optional[int] = None,
        trace: Optional[Dict[str, TraceFunction]] = None,
    ) -> InferenceSummary:
        """
        Run Gibbs sampling.

        Parameters
        ----------
        build_model : callable
            Called once per chain with that chain's Generator. Returns a
            model with data and samplers attached. Samplers should be
            seeded with the generator they receive.
        draws : int
            Number of recorded iterations per chain. Default 1000.
        burn : int
            Number of discarded iterations per chain. Default 100.
        chains : int
            Number of independent chains. Default 2.
        random_seed : int, optional
            Seed for the chain generators.
        trace : dict, optional
            Maps a variable name to a function of the model returning
            its current value. Defaults to every parameter object.

        Returns
        -------
        summary : InferenceSummary

        Raises
        ------
        ValueError
            If draws or chains is not positive, or burn is negative.
        """
        if draws < 1:
            raise ValueError(f"draws must be positive. Got {draws}")
        if burn < 0:
            raise ValueError(f"burn must be non-negative. Got {burn}")
        if chains < 1:
            raise ValueError(f"chains must be positive. Got {chains}")

        start_time = time.time()
        seeds = np.random.SeedSequence(random_seed).spawn(chains)
        chain_values = []
        chain_logpri = []
        for c, seed in enumerate(seeds):
            model = build_model(np.random.default_rng(seed))
            chain_trace = trace if trace is not None else default_trace(model)
            values, logpri = self._run_chain(model, chain_trace, draws, burn)
            chain_values.append(values)
            chain_logpri.append(logpri)
            logger.info("Chain %d of %d finished", c + 1, chains)

        posterior = {
            name: np.stack([v[name] for v in chain_values]) for name in chain_values[0]
        }
        sample_stats = None
        if self.record_logpri:
            sample_stats = {"lp": np.stack(chain_logpri)}
        idata = az.from_dict(posterior=posterior, sample_stats=sample_stats)

        sampling_time = time.time() - start_time
        logger.info(
            "Sampled %d chains x %d draws (%d burn) in %.1fs",
            chains, draws, burn, sampling_time,
        )
        summary = InferenceSummary(
            idata=idata,
            n_draws=draws,
            n_burn=burn,
            n_chains=chains,
            sampling_time=sampling_time,
        )
        if self.check_convergence:
            summary.diagnostics().report()
        return summary

    def __repr__(self) -> str:
        return (
            f"GibbsRunner(record_logpri={self.record_logpri}, "
            f"check_convergence={self.check_convergence})"
        )
