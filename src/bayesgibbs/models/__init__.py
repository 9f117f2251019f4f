"""
Probability models, their parameters and sufficient statistics.

Every model owns a list of Params, an optional SufficientStatistic and
the posterior samplers assigned to it with set_method().

**Foundations:**
- params.py: UnivParams, VectorParams, MatrixParams, SpdParams
- base.py: SufficientStatistic, Model and capability classes

**Scalar families:**
- GaussianModel, GammaModel, PoissonModel

**Matrix and vector families:**
- WishartModel, MvnModel, DirichletModel, ProductDirichletModel, MarkovModel

**Regression:**
- RegressionModel (RegSuf, WeightedRegSuf), ArModel
- LogisticRegressionModel, ProbitRegressionModel, CumulativeLogitModel
- MultinomialLogitModel, MultinomialProbitModel
- Selector, VariableSelectionPrior

**Compound models:**
- CompositeModel, FiniteMixtureModel, HierarchicalGammaModel, HiddenMarkovModel

**Point processes:**
- PointProcess, HomogeneousPoissonProcess, CosinePoissonProcess,
  WeeklyCyclePoissonProcess
"""

from bayesgibbs.models.params import (
    Params,
    UnivParams,
    VectorParams,
    MatrixParams,
    SpdParams,
)
from bayesgibbs.models.base import (
    SufficientStatistic,
    Model,
    DoubleModel,
    DiffDoubleModel,
    LoglikeModel,
    DiffLoglikeModel,
    EmMixtureComponent,
)
from bayesgibbs.models.gaussian import GaussianSuf, GaussianModel
from bayesgibbs.models.gamma import GammaSuf, GammaModel
from bayesgibbs.models.poisson import PoissonSuf, PoissonModel
from bayesgibbs.models.wishart import WishartSuf, WishartModel
from bayesgibbs.models.dirichlet import (
    DirichletSuf,
    DirichletModel,
    ProductDirichletSuf,
    ProductDirichletModel,
)
from bayesgibbs.models.markov import MarkovSuf, MarkovModel
from bayesgibbs.models.mvn import MvnSuf, MvnModel
from bayesgibbs.models.selector import (
    Selector,
    MainEffect,
    Interaction,
    VariableSelectionPrior,
)
from bayesgibbs.models.regression import RegSuf, WeightedRegSuf, RegressionModel
from bayesgibbs.models.ar import ArModel, is_stationary
from bayesgibbs.models.glm import (
    GlmCoefs,
    LogisticRegressionModel,
    ProbitRegressionModel,
    CumulativeLogitModel,
)
from bayesgibbs.models.multinomial import MultinomialLogitModel, MultinomialProbitModel
from bayesgibbs.models.composite import (
    CompositeModel,
    CompositeEmMixtureComponent,
    FiniteMixtureModel,
)
from bayesgibbs.models.hierarchical import HierarchicalGammaModel
from bayesgibbs.models.hmm import HiddenMarkovModel
from bayesgibbs.models.point_process import (
    PointProcess,
    PoissonProcessSuf,
    HomogeneousPoissonProcess,
    CosinePoissonProcess,
    WeeklyCyclePoissonSuf,
    WeeklyCyclePoissonProcess,
)

__all__ = [
    "Params",
    "UnivParams",
    "VectorParams",
    "MatrixParams",
    "SpdParams",
    "SufficientStatistic",
    "Model",
    "DoubleModel",
    "DiffDoubleModel",
    "LoglikeModel",
    "DiffLoglikeModel",
    "EmMixtureComponent",
    "GaussianSuf",
    "GaussianModel",
    "GammaSuf",
    "GammaModel",
    "PoissonSuf",
    "PoissonModel",
    "WishartSuf",
    "WishartModel",
    "DirichletSuf",
    "DirichletModel",
    "ProductDirichletSuf",
    "ProductDirichletModel",
    "MarkovSuf",
    "MarkovModel",
    "MvnSuf",
    "MvnModel",
    "Selector",
    "MainEffect",
    "Interaction",
    "VariableSelectionPrior",
    "RegSuf",
    "WeightedRegSuf",
    "RegressionModel",
    "ArModel",
    "is_stationary",
    "GlmCoefs",
    "LogisticRegressionModel",
    "ProbitRegressionModel",
    "CumulativeLogitModel",
    "MultinomialLogitModel",
    "MultinomialProbitModel",
    "CompositeModel",
    "CompositeEmMixtureComponent",
    "FiniteMixtureModel",
    "HierarchicalGammaModel",
    "HiddenMarkovModel",
    "PointProcess",
    "PoissonProcessSuf",
    "HomogeneousPoissonProcess",
    "CosinePoissonProcess",
    "WeeklyCyclePoissonSuf",
    "WeeklyCyclePoissonProcess",
]
