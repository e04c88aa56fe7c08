"""Server-side recount of target hits.

The widget moves a target around the drawing area and counts a hit when
the cursor enters the hit radius after a minimum reaction time. Clients
that also upload the target placements can have the count recomputed here
instead of trusting the reported number.
"""

import logging
import math
from typing import Any, Mapping, Sequence

from ..config.constants import TARGET_HIT_RADIUS_PX, TARGET_REACTION_FLOOR_MS

logger = logging.getLogger(__name__)


def count_target_hits(
    points: Sequence[Mapping[str, Any]],
    targets: Sequence[Mapping[str, Any]],
    radius: float = TARGET_HIT_RADIUS_PX,
    reaction_floor_ms: float = TARGET_REACTION_FLOOR_MS,
) -> int:
    """Count hits of a moving target along a pointer trace.

    Args:
        points: Ordered {x, y, t} pointer samples.
        targets: Ordered target placements {x, y, t}, t being the moment the
            target appeared at that position. Each hit moves on to the next
            placement.
        radius: Hit radius in pixels.
        reaction_floor_ms: Minimum time since the target moved; samples
            inside the radius before then are coincidence, not a hit.

    Returns:
        Number of placements that were hit.
    """
    hits = 0
    idx = 0
    for p in points:
        if idx >= len(targets):
            break
        target = targets[idx]
        dist = math.hypot(float(p["x"]) - float(target["x"]), float(p["y"]) - float(target["y"]))
        if dist < radius and float(p["t"]) - float(target["t"]) > reaction_floor_ms:
            hits += 1
            idx += 1
    logger.debug("Target recount: hits=%d placements=%d", hits, len(targets))
    return hits
