from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence, Tuple, Union

import numpy as np


@dataclass(frozen=True)
class PointMarkers:
    """Filled circles at normalized (x, y) positions."""
    points: Tuple[Tuple[float, float], ...]
    radius: int = 5


@dataclass(frozen=True)
class TextLine:
    """A line of text anchored at a pixel position (left, baseline)."""
    text: str
    position: Tuple[int, int]


DrawInstruction = Union[PointMarkers, TextLine]


TEXT_COLOR: Tuple[int, int, int] = (255, 255, 255)
POINT_COLOR: Tuple[int, int, int] = (0, 0, 0)


def _project_to_px(width: int, height: int, x: float, y: float) -> Tuple[int, int]:
    if not (np.isfinite(x) and np.isfinite(y)):
        return 0, 0
    px = int(round(x * (width - 1)))
    py = int(round(y * (height - 1)))
    return max(0, min(width - 1, px)), max(0, min(height - 1, py))


def render_instructions(
    frame_bgr: np.ndarray,
    instructions: Sequence[DrawInstruction],
    *,
    text_color: Tuple[int, int, int] = TEXT_COLOR,
    point_color: Tuple[int, int, int] = POINT_COLOR,
    font_scale: float = 1.0,
) -> np.ndarray:
    """Draw instructions on the frame (in place), in order, and return it.

    Does not require OpenCV at import; uses it lazily so the analysis can run without it.
    """
    if not isinstance(frame_bgr, np.ndarray) or frame_bgr.ndim != 3:
        return frame_bgr

    try:
        import cv2  # type: ignore
    except ImportError:
        return frame_bgr

    height, width = frame_bgr.shape[:2]
    for instr in instructions:
        if isinstance(instr, PointMarkers):
            for x, y in instr.points:
                cv2.circle(frame_bgr, _project_to_px(width, height, x, y), instr.radius, point_color, -1)
        elif isinstance(instr, TextLine):
            cv2.putText(
                frame_bgr,
                instr.text,
                instr.position,
                cv2.FONT_HERSHEY_SIMPLEX,
                font_scale,
                text_color,
                2,
                cv2.LINE_AA,
            )
    return frame_bgr


def render_video_with_counter(
    input_path: str,
    output_path: str,
    *,
    backend_factory,
    pipeline_factory: Callable[[], object],
    limit_frames: Optional[int] = None,
) -> List[object]:
    """Annotate a video with landmarks, rep count and form feedback.

    - backend_factory: callable returning a context-managed landmark source (e.g., PoseBackend)
    - pipeline_factory: callable returning a fresh FramePipeline
    - limit_frames: if provided, stops after this many frames (useful for samples/tests)
    Returns the per-frame results.
    """
    import cv2  # type: ignore

    cap = cv2.VideoCapture(input_path)
    if not cap.isOpened():
        raise RuntimeError(f"Failed to open video: {input_path}")

    width = int(cap.get(cv2.CAP_PROP_FRAME_WIDTH))
    height = int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT))
    fps = cap.get(cv2.CAP_PROP_FPS) or 30.0

    fourcc = cv2.VideoWriter_fourcc(*"mp4v")
    writer = cv2.VideoWriter(output_path, fourcc, fps, (width, height))
    if not writer.isOpened():
        cap.release()
        raise RuntimeError(f"Failed to open writer: {output_path}")

    pipeline = pipeline_factory()
    results: List[object] = []
    try:
        with backend_factory() as backend:
            while limit_frames is None or len(results) < limit_frames:
                ok, frame = cap.read()
                if not ok:
                    break
                result = pipeline.process(backend.infer(frame))
                render_instructions(frame, result.instructions)
                writer.write(frame)
                results.append(result)
    finally:
        writer.release()
        cap.release()
    return results
