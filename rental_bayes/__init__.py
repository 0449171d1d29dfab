"""
Rental price analysis - Bayesian linear regression with MCMC.

Modules:
- data: Listing ingestion, synthetic inputs and completeness filtering
- features: Geodistance and listing feature engineering
- models: Model specification, Gibbs sampler, diagnostics, evaluation
- pipeline: End-to-end analysis run
- report: Summary tables
- visualization: Trace, ACF and running-mean plots
"""
