from __future__ import annotations

import math
from typing import Callable, List, Optional, Tuple

import pytest

from pose.landmarks import BodyLandmark, Landmark


SEGMENT = 0.15


def _offset(origin: Tuple[float, float], heading_deg: float) -> Tuple[float, float]:
    rad = math.radians(heading_deg)
    return origin[0] + SEGMENT * math.cos(rad), origin[1] + SEGMENT * math.sin(rad)


def build_squat_pose(
    knee: float,
    hip: float,
    back: float,
    *,
    right_knee: Optional[float] = None,
    right_hip: Optional[float] = None,
    visibility: float = 0.99,
) -> List[Optional[Landmark]]:
    """
    33 BlazePose landmarks laid out so the joint angles come out exactly as requested.

    Left hip sits left of the right hip on the same row; the back angle is measured
    from the left shoulder against that hip line. The right leg mirrors the left one.
    """
    right_knee = knee if right_knee is None else right_knee
    right_hip = hip if right_hip is None else right_hip

    lh = (0.45, 0.55)
    rh = (0.55, 0.55)

    ls_heading = -back
    lk_heading = ls_heading + hip
    ls = _offset(lh, ls_heading)
    lk = _offset(lh, lk_heading)
    la = _offset(lk, lk_heading + 180.0 + knee)

    rs_heading = 180.0 + back
    rk_heading = rs_heading - right_hip
    rs = _offset(rh, rs_heading)
    rk = _offset(rh, rk_heading)
    ra = _offset(rk, rk_heading + 180.0 - right_knee)

    frame: List[Optional[Landmark]] = [Landmark(0.5, 0.1, visibility) for _ in range(33)]
    for idx, (x, y) in (
        (BodyLandmark.LEFT_SHOULDER, ls),
        (BodyLandmark.RIGHT_SHOULDER, rs),
        (BodyLandmark.LEFT_HIP, lh),
        (BodyLandmark.RIGHT_HIP, rh),
        (BodyLandmark.LEFT_KNEE, lk),
        (BodyLandmark.RIGHT_KNEE, rk),
        (BodyLandmark.LEFT_ANKLE, la),
        (BodyLandmark.RIGHT_ANKLE, ra),
    ):
        frame[idx] = Landmark(x=x, y=y, visibility=visibility)
    return frame


@pytest.fixture
def squat_pose() -> Callable[..., List[Optional[Landmark]]]:
    return build_squat_pose
