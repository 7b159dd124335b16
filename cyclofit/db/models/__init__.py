# Models package (re-export for stable imports)
from .analysis import Analysis

__all__ = [
    "Analysis",
]
