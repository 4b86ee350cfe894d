"""predvenue - simulated prediction-market venue with an LMSR market maker."""

__version__ = "0.1.0"
