"""cbdata -- expression-driven retrieval of economic time series."""

__version__ = "0.4.0"
