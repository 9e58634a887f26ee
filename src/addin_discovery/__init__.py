"""Cake addin discovery and audit pipeline."""

from addin_discovery.__version__ import __version__
from addin_discovery.models import (
    AnalysisResult,
    CakeVersion,
    DependencyAnalysis,
    DiscoverySource,
    PackageRecord,
    Reference,
)

__all__ = [
    "__version__",
    "AnalysisResult",
    "CakeVersion",
    "DependencyAnalysis",
    "DiscoverySource",
    "PackageRecord",
    "Reference",
]
