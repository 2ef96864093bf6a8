"""Instance monitoring: domain discovery, metric polling and chart-ready series."""

__version__ = "0.1.0"
