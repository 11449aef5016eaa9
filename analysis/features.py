from __future__ import annotations

from dataclasses import asdict, dataclass
from math import atan2, degrees, isfinite
from typing import Dict

from pose.landmarks import BodyLandmark, Landmark, LandmarkSet


@dataclass(frozen=True)
class JointAngles:
    """Per-frame joint angles in degrees. back is one value shared by both sides."""
    left_knee: float
    right_knee: float
    left_hip: float
    right_hip: float
    back: float

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


def angle_between(p1: Landmark, p2: Landmark, p3: Landmark) -> float:
    """
    Returns the unsigned angle at vertex p2 (in degrees) between rays p2->p1 and p2->p3.

    - Uses the difference of the two atan2 headings, folded into [0, 180]
    - Coincident points do not raise: atan2(0, 0) == 0 gives a defined heading
    - Non-finite coordinates return nan
    """
    if not all(isfinite(v) for v in (p1.x, p1.y, p2.x, p2.y, p3.x, p3.y)):
        return float("nan")

    theta = abs(degrees(atan2(p3.y - p2.y, p3.x - p2.x) - atan2(p1.y - p2.y, p1.x - p2.x)))
    if theta > 180.0:
        theta = 360.0 - theta
    return float(theta)


def extract_joint_angles(landmarks: LandmarkSet) -> JointAngles:
    """
    Compute knee, hip and back angles for a gated frame.

    Ankle visibility is not checked: a low-confidence ankle still yields a knee angle.
    Raises MissingLandmark if a joint was not detected at all.
    """
    lm = landmarks
    return JointAngles(
        left_knee=angle_between(lm[BodyLandmark.LEFT_HIP], lm[BodyLandmark.LEFT_KNEE], lm[BodyLandmark.LEFT_ANKLE]),
        right_knee=angle_between(lm[BodyLandmark.RIGHT_HIP], lm[BodyLandmark.RIGHT_KNEE], lm[BodyLandmark.RIGHT_ANKLE]),
        left_hip=angle_between(lm[BodyLandmark.LEFT_SHOULDER], lm[BodyLandmark.LEFT_HIP], lm[BodyLandmark.LEFT_KNEE]),
        right_hip=angle_between(lm[BodyLandmark.RIGHT_SHOULDER], lm[BodyLandmark.RIGHT_HIP], lm[BodyLandmark.RIGHT_KNEE]),
        # rough proxy: torso line against the hip line, left side only
        back=angle_between(lm[BodyLandmark.LEFT_SHOULDER], lm[BodyLandmark.LEFT_HIP], lm[BodyLandmark.RIGHT_HIP]),
    )
