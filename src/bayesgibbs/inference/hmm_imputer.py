"""
Hidden state imputation for HiddenMarkovModel, optionally in parallel.

Streams are partitioned across workers. Each worker owns cleared copies
of the chain's and every component's sufficient statistics plus its own
generator spawned from the imputer's, so workers share no mutable state.
After all workers finish, their statistics are merged into the model's
with combine().
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Sequence, Tuple
import numpy as np

from bayesgibbs.distributions.draws import SeedLike
from bayesgibbs.inference.base import PosteriorSampler
from bayesgibbs.models.base import SufficientStatistic
from bayesgibbs.models.hmm import HiddenMarkovModel

logger = logging.getLogger(__name__)

WorkerResult = Tuple[SufficientStatistic, List[SufficientStatistic], float]


class HmmDataImputer(PosteriorSampler):
    """
    Forward-filtering backward-sampling over every stream of an HMM.

    Assign with hmm.set_method(imputer). HiddenMarkovModel.sample_posterior
    runs the imputer first and then the chain's and components' own
    samplers.

    Attributes
    ----------
    hmm : HiddenMarkovModel
        Model whose sufficient statistics are refilled.
    n_workers : int
        Number of worker threads. 1 runs inline.
    loglike : float
        Log likelihood of the data from the most recent imputation.
    """

    def __init__(
        self,
        hmm: HiddenMarkovModel,
        n_workers: int = 1,
        seed: SeedLike = None,
    ) -> None:
        super().__init__(seed)
        if n_workers < 1:
            raise ValueError(f"n_workers must be at least 1. Got {n_workers}")
        if any(c.suf is None for c in hmm.components):
            raise ValueError("Every HMM component needs a sufficient statistic")
        self.hmm = hmm
        self.n_workers = int(n_workers)
        self.loglike = -np.inf

    def _impute(
        self,
        streams: Sequence[Sequence[Any]],
        rng: np.random.Generator,
    ) -> WorkerResult:
        markov_suf = self.hmm.markov.suf.clone_empty()
        component_sufs = [c.suf.clone_empty() for c in self.hmm.components]
        loglike = 0.0
        for stream in streams:
            states, stream_loglike = self.hmm.impute_stream(stream, rng)
            loglike += stream_loglike
            markov_suf.update(states)
            for s, y in zip(states, stream):
                component_sufs[s].update(y)
        return markov_suf, component_sufs, loglike

    def _partition(self) -> List[List[Sequence[Any]]]:
        streams = self.hmm.data
        n = min(self.n_workers, max(len(streams), 1))
        return [list(streams[i::n]) for i in range(n)]

    def draw(self) -> None:
        self.hmm.clear_suf()
        chunks = self._partition()
        generators = self.rng.spawn(len(chunks))
        if len(chunks) == 1:
            results = [self._impute(chunks[0], generators[0])]
        else:
            with ThreadPoolExecutor(max_workers=len(chunks)) as pool:
                results = list(pool.map(self._impute, chunks, generators))
        self.loglike = 0.0
        for markov_suf, component_sufs, loglike in results:
            self.hmm.markov.suf.combine(markov_suf)
            for c, suf in zip(self.hmm.components, component_sufs):
                c.suf.combine(suf)
            self.loglike += loglike
        logger.debug("Imputed %d streams on %d workers", len(self.hmm.data), len(chunks))

    def logpri(self) -> float:
        """The imputer has no parameters of its own."""
        return 0.0

    def __repr__(self) -> str:
        return f"HmmDataImputer(n_workers={self.n_workers})"
