from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class HysteresisThresholds:
    """Pair of thresholds to avoid chatter: enter below go_down, exit above go_up."""
    go_down: float  # degrees, entering the bottom of the movement
    go_up: float    # degrees, back to standing

    def __post_init__(self) -> None:
        if not self.go_down < self.go_up:
            raise ValueError("go_down must be lower than go_up")


@dataclass(frozen=True)
class AngleRange:
    """Closed interval of acceptable joint angles, in degrees."""
    low: float
    high: float

    def __post_init__(self) -> None:
        if self.low > self.high:
            raise ValueError("low must not exceed high")

    def contains(self, value: float) -> bool:
        return self.low <= value <= self.high


# Knee angle (both legs) that starts and finishes a rep.
# The 130-150 band keeps noisy angles from double counting.
SQUAT_KNEE_ANGLE = HysteresisThresholds(go_down=130.0, go_up=150.0)

# Correct form envelope at the bottom of the squat.
# The lower bound of each range is also the "bending too much" issue threshold.
SQUAT_KNEE_RANGE = AngleRange(90.0, 110.0)
SQUAT_HIP_RANGE = AngleRange(80.0, 100.0)
SQUAT_BACK_RANGE = AngleRange(70.0, 90.0)

# Hips and knees must be seen with more than this confidence
MIN_LANDMARK_VISIBILITY = 0.5

# Share of analyzed frames an issue must appear on to be listed in a video summary
COMMON_ISSUE_MIN_SHARE = 0.10
