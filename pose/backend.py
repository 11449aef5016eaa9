from __future__ import annotations

from typing import List, Optional

import numpy as np

from .landmarks import Landmark, LandmarkSet


NUM_LANDMARKS = 33


def _unit(value: object) -> float:
    v = float(value)
    return max(0.0, min(1.0, v)) if np.isfinite(v) else 0.0


def landmarks_from_result(result: object, num_landmarks: int = NUM_LANDMARKS) -> LandmarkSet:
    """
    Convert a BlazePose result into a LandmarkSet of num_landmarks entries.

    - No pose (or no result) gives a set of None entries
    - Joints past the end of a short result are None
    - Coordinates and visibility are clamped to [0, 1]; non-finite values become 0
    """
    raw = getattr(getattr(result, "pose_landmarks", None), "landmark", None) or []
    items: List[Optional[Landmark]] = [None] * num_landmarks
    for idx, lm in enumerate(raw[:num_landmarks]):
        items[idx] = Landmark(
            x=_unit(getattr(lm, "x", 0.0)),
            y=_unit(getattr(lm, "y", 0.0)),
            visibility=_unit(getattr(lm, "visibility", 0.0)),
        )
    return LandmarkSet(items)


class PoseBackend:
    """
    Landmark source for the squat pipeline, backed by MediaPipe BlazePose.

    One frame in, one LandmarkSet out; callers wait for each result before
    sending the next frame.
    """

    def __init__(
        self,
        model_complexity: int = 1,
        min_detection_confidence: float = 0.5,
        min_tracking_confidence: float = 0.5,
        pose_model: Optional[object] = None,
        smooth_landmarks: bool = True,
    ) -> None:
        """
        pose_model replaces MediaPipe: anything with .process(rgb_frame) returning an
        object whose .pose_landmarks.landmark items carry .x, .y and .visibility.
        """
        self._owns_model = pose_model is None
        if pose_model is not None:
            self._pose = pose_model
            return
        try:
            import mediapipe as mp  # type: ignore
        except ImportError as exc:  # pragma: no cover - exercised only when mediapipe missing
            raise ImportError(
                "mediapipe is required for PoseBackend. Install with `pip install mediapipe`"
            ) from exc

        self._pose = mp.solutions.pose.Pose(
            model_complexity=model_complexity,
            enable_segmentation=False,
            smooth_landmarks=smooth_landmarks,
            min_detection_confidence=min_detection_confidence,
            min_tracking_confidence=min_tracking_confidence,
        )

    def close(self) -> None:
        if self._owns_model:
            self._pose.close()

    def __enter__(self) -> "PoseBackend":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def infer(self, frame_bgr: np.ndarray) -> LandmarkSet:
        """Estimate landmarks for one HxWx3 BGR frame (as read by OpenCV)."""
        if not isinstance(frame_bgr, np.ndarray) or frame_bgr.ndim != 3 or frame_bgr.shape[2] < 3:
            raise ValueError("frame_bgr must be an HxWx3 BGR numpy array")

        frame_rgb = np.ascontiguousarray(frame_bgr[..., 2::-1])
        return landmarks_from_result(self._pose.process(frame_rgb))
