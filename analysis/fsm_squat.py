from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from .features import JointAngles
from .utils import HysteresisThresholds, SQUAT_KNEE_ANGLE


logger = logging.getLogger(__name__)


@dataclass
class SquatState:
    in_squat_position: bool = False
    count: int = 0


class SquatFSM:
    """
    Squat rep counter on both knee angles with hysteresis.

    - Standing -> squatting when both knees < thresholds.go_down AND the frame's form is correct
    - Squatting -> standing when both knees > thresholds.go_up, whatever the form; counts a rep

    Form gates entry only. Bending deep with bad form never starts a rep,
    while a rep already started is counted even if posture slips on the way up.
    """

    def __init__(self, thresholds: HysteresisThresholds = SQUAT_KNEE_ANGLE) -> None:
        self.thresholds = thresholds
        self.state = SquatState()
        self._frame_idx = -1

    def reset(self) -> None:
        self.state = SquatState()
        self._frame_idx = -1

    def process_frame(
        self,
        angles: JointAngles,
        form_correct: bool,
        *,
        frame_idx: Optional[int] = None,
    ) -> Dict[str, object]:
        """
        angles are in degrees; a NaN knee angle yields no state change.
        Returns an event dict: {frame_idx, exercise, rep_event, angles, flags}
        """
        self._frame_idx = int(frame_idx) if frame_idx is not None else (self._frame_idx + 1)
        left = float(angles.left_knee)
        right = float(angles.right_knee)

        rep_event: Optional[str] = None

        if np.isfinite(left) and np.isfinite(right):
            down = self.thresholds.go_down
            up = self.thresholds.go_up
            if not self.state.in_squat_position:
                if left < down and right < down and form_correct:
                    self.state.in_squat_position = True
                    logger.debug("frame %d: squat entered (knees %.1f/%.1f)", self._frame_idx, left, right)
            elif left > up and right > up:
                self.state.in_squat_position = False
                self.state.count += 1
                rep_event = "rep_complete"
                logger.debug("frame %d: rep %d complete", self._frame_idx, self.state.count)

        event = {
            "frame_idx": self._frame_idx,
            "exercise": "squat",
            "rep_event": rep_event,
            "angles": {"left_knee": left, "right_knee": right},
            "flags": {"in_squat_position": self.state.in_squat_position, "form_correct": bool(form_correct)},
        }
        return event
