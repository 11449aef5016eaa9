from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence

import numpy as np

from pose.draw import DrawInstruction, PointMarkers, TextLine
from pose.landmarks import Landmark, LandmarkSet, MissingLandmark, is_analyzable
from .features import JointAngles, extract_joint_angles
from .form import FormVerdict, ISSUE_ORDER, classify_form
from .fsm_squat import SquatFSM, SquatState
from .utils import COMMON_ISSUE_MIN_SHARE, MIN_LANDMARK_VISIBILITY


logger = logging.getLogger(__name__)


NOT_VISIBLE_TEXT = "Hips and knees not visible"

# Text layout in pixels (left, baseline)
COUNT_POS = (50, 50)
FORM_POS = (50, 100)
ISSUES_TOP = 150
ISSUE_LINE_STEP = 50


@dataclass(frozen=True)
class FrameResult:
    frame_idx: int
    analyzable: bool
    count: int
    in_squat_position: bool
    angles: Optional[JointAngles] = None
    verdict: Optional[FormVerdict] = None
    rep_event: Optional[str] = None
    instructions: List[DrawInstruction] = field(default_factory=list)


def _markers(landmarks: LandmarkSet) -> List[DrawInstruction]:
    points = tuple((lm.x, lm.y) for lm in landmarks.present())
    return [PointMarkers(points)] if points else []


def _status_lines(count: int, verdict: FormVerdict) -> List[DrawInstruction]:
    lines: List[DrawInstruction] = [TextLine(f"Squat Count: {count}", COUNT_POS)]
    if verdict.correct:
        lines.append(TextLine("Form: Correct", FORM_POS))
    else:
        lines.append(TextLine("Form: Incorrect", FORM_POS))
        for i, issue in enumerate(verdict.issues):
            lines.append(TextLine(str(issue), (COUNT_POS[0], ISSUES_TOP + i * ISSUE_LINE_STEP)))
    return lines


class FramePipeline:
    """
    Runs one squat session: gate -> angles -> form -> rep FSM -> draw instructions.

    Frames are processed strictly one at a time. The FSM state is the only thing
    carried between frames; a frame that cannot be analyzed leaves it untouched.
    Not thread-safe: callers sharing a pipeline across threads must serialize process().
    """

    def __init__(
        self,
        fsm: Optional[SquatFSM] = None,
        *,
        min_visibility: float = MIN_LANDMARK_VISIBILITY,
    ) -> None:
        if not (0.0 <= min_visibility <= 1.0):
            raise ValueError("min_visibility must be in [0, 1]")
        self.fsm = fsm if fsm is not None else SquatFSM()
        self.min_visibility = float(min_visibility)
        self._frame_idx = -1

    @property
    def state(self) -> SquatState:
        return self.fsm.state

    def reset(self) -> None:
        self.fsm.reset()
        self._frame_idx = -1

    def process(self, landmarks: Optional[Sequence[Optional[Landmark]]]) -> FrameResult:
        self._frame_idx += 1
        lmset = LandmarkSet(() if landmarks is None else landmarks)
        markers = _markers(lmset)

        try:
            if lmset.is_empty or not is_analyzable(lmset, self.min_visibility):
                return self._not_visible(markers)
            angles = extract_joint_angles(lmset)
        except MissingLandmark as exc:
            logger.debug("frame %d skipped: %s", self._frame_idx, exc)
            return self._not_visible(markers)

        verdict = classify_form(angles)
        event = self.fsm.process_frame(angles, verdict.correct, frame_idx=self._frame_idx)
        state = self.fsm.state
        return FrameResult(
            frame_idx=self._frame_idx,
            analyzable=True,
            count=state.count,
            in_squat_position=state.in_squat_position,
            angles=angles,
            verdict=verdict,
            rep_event=event["rep_event"],
            instructions=markers + _status_lines(state.count, verdict),
        )

    def run(self, frames: Iterable[Optional[Sequence[Optional[Landmark]]]]) -> Iterator[FrameResult]:
        for landmarks in frames:
            yield self.process(landmarks)

    def _not_visible(self, markers: List[DrawInstruction]) -> FrameResult:
        state = self.fsm.state
        return FrameResult(
            frame_idx=self._frame_idx,
            analyzable=False,
            count=state.count,
            in_squat_position=state.in_squat_position,
            instructions=markers + [TextLine(NOT_VISIBLE_TEXT, COUNT_POS)],
        )


def analyze_video(frames_iter: Iterable[Optional[Sequence[Optional[Landmark]]]]) -> Dict[str, object]:
    """
    Analyze a finite stream of per-frame landmarks and return a JSON-serializable dict.

    Assumptions:
    - frames_iter yields per-frame lists of 33 landmarks (Landmark or None) from PoseBackend.infer
    - Coordinates are normalized [0,1]

    Output structure (example):
    {
      "video_id": "<uuid4>",
      "summary": {
        "squats": {"total_reps": 2, "frames_total": 300, "frames_analyzed": 280,
                   "frames_not_visible": 20, "correct_form_frames": 35,
                   "common_issues": ["Back Leaning Too Much"]}
      },
      "frame_data": [
        {"frame_index": 88, "exercise": "squat", "rep_id": 1, "is_form_ok": true, "issues": [],
         "angles": {"knee": 96.4}}
      ]
    }
    """
    video_id = str(uuid.uuid4())
    pipeline = FramePipeline()

    frame_records: List[Dict[str, object]] = []
    issue_counts: Dict[str, int] = {issue.category: 0 for issue in ISSUE_ORDER}
    frames_total = 0
    frames_analyzed = 0
    correct_frames = 0

    # Accumulators for the squat phase of the current rep
    min_knee_current = float("inf")
    rep_issues: set = set()

    for result in pipeline.run(frames_iter):
        frames_total += 1
        if not result.analyzable:
            continue
        frames_analyzed += 1
        verdict = result.verdict
        angles = result.angles
        if verdict.correct:
            correct_frames += 1
        for issue in verdict.issues:
            issue_counts[issue.category] += 1

        if result.in_squat_position:
            knee = min(angles.left_knee, angles.right_knee)
            if np.isfinite(knee):
                min_knee_current = min(min_knee_current, knee)
            rep_issues.update(issue.category for issue in verdict.issues)

        if result.rep_event == "rep_complete":
            # Entry already required correct form; a rep is only flagged for issues while down
            issues = [issue.category for issue in ISSUE_ORDER if issue.category in rep_issues]
            frame_records.append(
                {
                    "frame_index": result.frame_idx,
                    "exercise": "squat",
                    "rep_id": result.count,
                    "is_form_ok": not issues,
                    "issues": issues,
                    "angles": {"knee": float(min_knee_current) if np.isfinite(min_knee_current) else None},
                }
            )
            min_knee_current = float("inf")
            rep_issues = set()

    common_issues: List[str] = []
    if frames_analyzed > 0:
        for issue in ISSUE_ORDER:
            if issue_counts[issue.category] / frames_analyzed >= COMMON_ISSUE_MIN_SHARE:
                common_issues.append(issue.category)

    squat_summary: Dict[str, object] = {
        "total_reps": int(pipeline.state.count),
        "frames_total": frames_total,
        "frames_analyzed": frames_analyzed,
        "frames_not_visible": frames_total - frames_analyzed,
        "correct_form_frames": correct_frames,
        "common_issues": common_issues,
    }
    logger.info("video %s: %d reps over %d frames", video_id, squat_summary["total_reps"], frames_total)

    return {
        "video_id": video_id,
        "summary": {"squats": squat_summary},
        "frame_data": frame_records,
    }
