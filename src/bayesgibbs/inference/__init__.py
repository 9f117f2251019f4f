"""
Posterior samplers, the Gibbs runner and convergence diagnostics.

**Usage:**
```python
from bayesgibbs.models import PoissonModel, GammaModel
from bayesgibbs.inference import PoissonGammaSampler, GibbsRunner

def build(rng):
    model = PoissonModel(1.0)
    model.set_data(counts)
    model.set_method(PoissonGammaSampler(model, GammaModel(2.0, 1.0), seed=rng))
    return model

summary = GibbsRunner().sample(build, draws=1000, burn=100, chains=2)
```

**Key Classes:**
- PosteriorSampler: base class, owns its Generator
- Conjugate: GaussianConjSampler, PoissonGammaSampler, MarkovConjSampler,
  MvnMeanSampler, MvnVarSampler and friends
- Slice: GammaPosteriorSampler, DirichletPosteriorSampler, HierarchicalGammaSampler
- Data augmentation: LogitSampler, ProbitSampler (and BMA variants),
  CumulativeLogitSampler, MLAuxMixSampler, MnpSampler, HmmDataImputer
- ArPosteriorSampler: stationarity-constrained AR draws
- GibbsRunner, InferenceSummary, DiagnosticsComputer
"""

from bayesgibbs.inference.base import PosteriorSampler
from bayesgibbs.inference.gaussian_samplers import (
    GaussianMeanSampler,
    GaussianVarSampler,
    GaussianConjSampler,
    GaussianMeanVarSampler,
    SharedSigsqSampler,
)
from bayesgibbs.inference.poisson_samplers import (
    PoissonGammaSampler,
    PoissonProcessGammaSampler,
)
from bayesgibbs.inference.gamma_samplers import (
    GammaPosteriorSampler,
    GammaPosteriorSamplerBeta,
    HierarchicalGammaSampler,
)
from bayesgibbs.inference.dirichlet_samplers import (
    DirichletPosteriorSampler,
    ProductDirichletPosteriorSampler,
)
from bayesgibbs.inference.markov_sampler import MarkovConjSampler
from bayesgibbs.inference.mvn_samplers import (
    MvnMeanSampler,
    MvnConjMeanSampler,
    MvnVarSampler,
    MvnIndependentVarianceSampler,
)
from bayesgibbs.inference.binary_regression_samplers import (
    LogitSampler,
    ProbitSampler,
    LogitSamplerBma,
    ProbitSamplerBma,
)
from bayesgibbs.inference.ordinal_sampler import CumulativeLogitSampler
from bayesgibbs.inference.multinomial_samplers import MLAuxMixSampler, MnpSampler
from bayesgibbs.inference.ar_sampler import ArPosteriorSampler
from bayesgibbs.inference.hmm_imputer import HmmDataImputer
from bayesgibbs.inference.runner import GibbsRunner, InferenceSummary
from bayesgibbs.inference.diagnostics import DiagnosticsComputer

__all__ = [
    "PosteriorSampler",
    "GaussianMeanSampler",
    "GaussianVarSampler",
    "GaussianConjSampler",
    "GaussianMeanVarSampler",
    "SharedSigsqSampler",
    "PoissonGammaSampler",
    "PoissonProcessGammaSampler",
    "GammaPosteriorSampler",
    "GammaPosteriorSamplerBeta",
    "HierarchicalGammaSampler",
    "DirichletPosteriorSampler",
    "ProductDirichletPosteriorSampler",
    "MarkovConjSampler",
    "MvnMeanSampler",
    "MvnConjMeanSampler",
    "MvnVarSampler",
    "MvnIndependentVarianceSampler",
    "LogitSampler",
    "ProbitSampler",
    "LogitSamplerBma",
    "ProbitSamplerBma",
    "CumulativeLogitSampler",
    "MLAuxMixSampler",
    "MnpSampler",
    "ArPosteriorSampler",
    "HmmDataImputer",
    "GibbsRunner",
    "InferenceSummary",
    "DiagnosticsComputer",
]
