from .decision import AnalysisResult, analyze_movement
from .features import DerivedSeries, extract_series
from .signals import SignalVector, evaluate_signals
from .targets import count_target_hits

__all__ = [
    "AnalysisResult",
    "DerivedSeries",
    "SignalVector",
    "analyze_movement",
    "count_target_hits",
    "evaluate_signals",
    "extract_series",
]
