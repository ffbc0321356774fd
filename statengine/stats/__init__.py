# Statify Engine - Statistics Package
"""Statistical procedures and the numeric helpers they share.

Import specific modules directly, e.g.:
    from statengine.stats.related_samples import TwoRelatedSamplesTest
"""

__all__ = [
    "data_model",
    "missing_values",
    "summary_statistics",
    "descriptives",
    "related_samples",
    "paired_t_test",
    "independent_t_test",
    "unit_root",
]
