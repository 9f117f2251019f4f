"""
bayesgibbs: sufficient statistics, likelihoods and posterior samplers
for conjugate and data-augmented Bayesian models.

**Subpackages:**
- distributions: random draws, densities, truncated draws, normal mixtures
- models: parameters, sufficient statistics and model families
- samplers: slice sampler and optimization routines
- inference: posterior samplers, Gibbs runner, diagnostics
"""

__version__ = "0.1.0"
