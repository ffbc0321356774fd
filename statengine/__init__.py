# Statify Engine - Package
"""
Statify Engine - numeric core of an SPSS-style statistics workbench.

This package provides:
- Variable metadata and user-missing value handling
- Descriptive statistics
- Two related samples tests (Wilcoxon, Sign)
- Paired and independent samples t-tests
- Dickey-Fuller / Augmented Dickey-Fuller unit root tests
- Isolated request/response execution with a caller-side timeout
"""

__version__ = "1.0.0"


# Lazy import so importing the numeric core does not start the compute layer
def get_executor(**kwargs):
    from statengine.compute.executor import ComputeExecutor
    return ComputeExecutor(**kwargs)


__all__ = ["get_executor", "__version__"]
