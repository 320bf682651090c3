"""
Mineral LCA Service

This service reports life-cycle assessment metrics for aluminium, copper and
steel processing: impact totals normalized against industry benchmarks,
circularity composites, scenario feasibility and ranked improvement insights.
"""

from .benchmarks import MetalType, Benchmark, get_benchmark
from .impact import normalize_impact, calculate_environmental_impact
from .circularity import composite_circularity, circularity_grade
from .scenarios import evaluate_scenario, find_baseline
from .insights import generate_insights
from .estimation import estimate_missing_processing
from .statistics import compute_dashboard_stats
from .config import settings

__version__ = "0.1.0"
__all__ = [
    "MetalType",
    "Benchmark",
    "get_benchmark",
    "normalize_impact",
    "calculate_environmental_impact",
    "composite_circularity",
    "circularity_grade",
    "evaluate_scenario",
    "find_baseline",
    "generate_insights",
    "estimate_missing_processing",
    "compute_dashboard_stats",
    "settings"
]
