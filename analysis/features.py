from __future__ import annotations

from math import atan2, degrees, isfinite
from typing import Optional

from pose.landmarks import Landmark


def angle(a: Optional[Landmark], b: Optional[Landmark], c: Optional[Landmark]) -> float:
    """
    Returns the planar angle at point B (in degrees, within [0, 180]) for triangle (A,B,C).

    Only x/y are used; z is ignored.

    - If any point is None or has non-finite coordinates, returns nan
    - Coincident points give a finite result since atan2(0, 0) == 0
    """
    if a is None or b is None or c is None:
        return float("nan")
    if not all(isfinite(v) for v in (a.x, a.y, b.x, b.y, c.x, c.y)):
        return float("nan")

    theta = abs(degrees(atan2(c.y - b.y, c.x - b.x) - atan2(a.y - b.y, a.x - b.x)))
    if theta > 180.0:
        theta = 360.0 - theta
    return float(theta)
