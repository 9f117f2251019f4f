"""
Convergence diagnostics for Gibbs output.

Wraps arviz's rank-normalized split Rhat, bulk and tail ESS and
posterior summaries for the draws a GibbsRunner records. Accepts either
an InferenceSummary or a bare arviz.InferenceData.

Rules of thumb:
- Rhat below 1.01 for every element of a variable
- Bulk ESS above 400 across all chains
"""

import logging
from typing import Dict, List, Optional

import arviz as az
import numpy as np
from numpy.typing import NDArray

logger = logging.getLogger(__name__)


class DiagnosticsComputer:
    """Convergence checks on recorded posterior draws."""

    def __init__(
        self,
        source,
        var_names: Optional[List[str]] = None,
        rhat_threshold: float = 1.01,
        min_ess: float = 400.0,
    ) -> None:
        """
        Parameters
        ----------
        source : InferenceSummary or arviz.InferenceData
            Draws to check. Anything with an ``idata`` attribute is unwrapped.
        var_names : list of str, optional
            Posterior variables to check. Defaults to all of them.
        rhat_threshold : float
            Largest Rhat accepted as converged.
        min_ess : float
            Smallest bulk ESS accepted as converged.
        """
        if rhat_threshold <= 1.0:
            raise ValueError(f"rhat_threshold must exceed 1. Got {rhat_threshold}")
        if min_ess <= 0:
            raise ValueError(f"min_ess must be positive. Got {min_ess}")
        self.idata = getattr(source, "idata", source)
        self.var_names = var_names
        self.rhat_threshold = rhat_threshold
        self.min_ess = min_ess

    @property
    def n_chains(self) -> int:
        """Number of chains in the posterior group."""
        return int(self.idata.posterior.sizes["chain"])

    @staticmethod
    def _by_name(dataset) -> Dict[str, NDArray[np.float64]]:
        return {
            str(name): np.asarray(dataset[name].values, dtype=float)
            for name in dataset.data_vars
        }

    def rhat(self) -> Dict[str, NDArray[np.float64]]:
        """
        Rank-normalized split Rhat of each variable.

        Returns
        -------
        rhat : dict
            Variable name to an array shaped like one draw of it.
            Constant variables give NaN.

        Raises
        ------
        ValueError
            If fewer than two chains were run.
        """
        if self.n_chains < 2:
            raise ValueError(f"Need at least 2 chains for Rhat. Got {self.n_chains}")
        return self._by_name(az.rhat(self.idata, var_names=self.var_names))

    def ess(self, method: str = "bulk") -> Dict[str, NDArray[np.float64]]:
        """Effective sample size of each variable, pooled over chains."""
        return self._by_name(az.ess(self.idata, var_names=self.var_names, method=method))

    def summary_stats(self, hdi_prob: float = 0.95) -> Dict:
        """
        Posterior summary statistics via arviz.

        Returns
        -------
        stats : Dict
            For each (possibly indexed) variable: mean, sd, hdi bounds,
            rhat and ess_bulk.
        """
        summary_df = az.summary(self.idata, var_names=self.var_names, hdi_prob=hdi_prob)
        hdi_low, hdi_high = [c for c in summary_df.columns if c.startswith("hdi_")]
        stats = {}
        for var_name in summary_df.index:
            row = summary_df.loc[var_name]
            stats[var_name] = {
                "mean": float(row["mean"]),
                "sd": float(row["sd"]),
                "hdi_low": float(row[hdi_low]),
                "hdi_high": float(row[hdi_high]),
                "rhat": float(row["r_hat"]),
                "ess_bulk": float(row["ess_bulk"]),
            }
        return stats

    def unconverged(self) -> List[str]:
        """
        Names of variables failing the Rhat or ESS threshold.

        NaN diagnostics from constant variables are ignored. Rhat is
        skipped for single-chain runs.
        """
        failing = set()
        if self.n_chains >= 2:
            for name, values in self.rhat().items():
                values = values[np.isfinite(values)]
                if np.any(values > self.rhat_threshold):
                    failing.add(name)
        for name, values in self.ess().items():
            values = values[np.isfinite(values)]
            if np.any(values < self.min_ess):
                failing.add(name)
        return sorted(failing)

    def report(self) -> bool:
        """Log a warning per unconverged variable. True when none fail."""
        failing = self.unconverged()
        for name in failing:
            logger.warning(
                "%s has not converged (Rhat threshold %.3g, minimum ESS %.0f)",
                name, self.rhat_threshold, self.min_ess,
            )
        if not failing:
            logger.info("All variables pass convergence checks")
        return not failing

    def __repr__(self) -> str:
        return (
            f"DiagnosticsComputer(chains={self.n_chains}, "
            f"rhat_threshold={self.rhat_threshold}, min_ess={self.min_ess})"
        )
