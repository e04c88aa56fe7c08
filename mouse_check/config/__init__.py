from .constants import (DETECTION_VERSION, BezierThresholds, DetectionConfig,
                        load_config, session_ttl_seconds)

__all__ = [
    "DETECTION_VERSION",
    "BezierThresholds",
    "DetectionConfig",
    "load_config",
    "session_ttl_seconds",
]
