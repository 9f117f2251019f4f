"""
Random draws, densities and distribution approximations.

**Draws and densities (draws.py):**
- seed_rng: explicit numpy Generator construction
- rgamma, rdirichlet, rmvn, rmvn_ivar, rmvn_suf, rwishart, rmulti
- dgamma, ddirichlet, dmvn_ivar, dwishart, lse

**Truncated draws (truncated.py):**
- rtrun_norm, rtrun_logis, rtrun_gamma

**Logit data augmentation (logit_lambda.py):**
- draw_lambda_mixing_weight: Holmes-Held scale mixture draw

**Normal mixtures (normal_mixture.py):**
- NormalMixtureApproximation, NormalMixtureApproximationTable, NegLogGamma
"""

from bayesgibbs.distributions.draws import (
    seed_rng,
    rgamma,
    rdirichlet,
    mdirichlet,
    rmulti,
    rmvn,
    rmvn_ivar,
    rmvn_suf,
    rwishart,
    lse,
    dgamma,
    ddirichlet,
    dmvn_ivar,
    dwishart,
)
from bayesgibbs.distributions.truncated import rtrun_norm, rtrun_logis, rtrun_gamma
from bayesgibbs.distributions.logit_lambda import draw_lambda_mixing_weight
from bayesgibbs.distributions.normal_mixture import (
    NegLogGamma,
    NormalMixtureApproximation,
    NormalMixtureApproximationTable,
)

__all__ = [
    "seed_rng",
    "rgamma",
    "rdirichlet",
    "mdirichlet",
    "rmulti",
    "rmvn",
    "rmvn_ivar",
    "rmvn_suf",
    "rwishart",
    "lse",
    "dgamma",
    "ddirichlet",
    "dmvn_ivar",
    "dwishart",
    "rtrun_norm",
    "rtrun_logis",
    "rtrun_gamma",
    "draw_lambda_mixing_weight",
    "NegLogGamma",
    "NormalMixtureApproximation",
    "NormalMixtureApproximationTable",
]
