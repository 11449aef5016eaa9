from __future__ import annotations

import numpy as np
import pytest

from analysis.analyzer import FramePipeline
from pose.draw import PointMarkers, TextLine, render_instructions, render_video_with_counter


def test_non_image_is_returned_untouched():
    flat = np.zeros((10, 10), dtype=np.uint8)
    assert render_instructions(flat, [TextLine("x", (1, 5))]) is flat


def test_draws_points_and_text():
    pytest.importorskip("cv2", reason="opencv-python not installed")

    frame = np.full((120, 200, 3), 255, dtype=np.uint8)
    out = render_instructions(frame, [PointMarkers(((0.5, 0.5),), radius=5)])
    assert out is frame
    # black marker at the projected center
    assert frame[60, 100].tolist() == [0, 0, 0]

    dark = np.zeros((120, 400, 3), dtype=np.uint8)
    render_instructions(dark, [TextLine("Squat Count: 3", (10, 50))])
    assert dark.sum() > 0
    # nothing drawn far below the text baseline
    assert dark[100:].sum() == 0


def test_non_finite_points_are_pinned_to_origin():
    pytest.importorskip("cv2", reason="opencv-python not installed")

    frame = np.full((50, 80, 3), 255, dtype=np.uint8)
    markers = PointMarkers(((float("inf"), 0.5), (0.5, float("-inf")), (float("nan"), 0.2)), radius=2)
    render_instructions(frame, [markers])
    assert frame[0, 0].tolist() == [0, 0, 0]
    assert frame[25, 40].tolist() == [255, 255, 255]


class _ScriptedBackend:
    """Landmark source replaying prepared frames, one per infer() call."""

    def __init__(self, frames):
        self._frames = iter(frames)
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True

    def infer(self, frame_bgr):
        assert frame_bgr.ndim == 3
        return next(self._frames)


def _write_clip(path, n_frames, size=(64, 64)):
    cv2 = pytest.importorskip("cv2", reason="opencv-python not installed")
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"mp4v"), 10.0, size)
    if not writer.isOpened():
        pytest.skip("mp4v writer unavailable")
    for _ in range(n_frames):
        writer.write(np.zeros((size[1], size[0], 3), dtype=np.uint8))
    writer.release()


def test_render_video_counts_reps(tmp_path, squat_pose):
    src = tmp_path / "in.mp4"
    dst = tmp_path / "out.mp4"
    _write_clip(src, 6)

    poses = [squat_pose(k, 90.0, 80.0) for k in (160, 95, 160, 95, 160, 160)]
    backend = _ScriptedBackend(poses)
    results = render_video_with_counter(
        str(src),
        str(dst),
        backend_factory=lambda: backend,
        pipeline_factory=FramePipeline,
        limit_frames=5,
    )

    assert backend.closed
    assert dst.exists() and dst.stat().st_size > 0
    assert 3 <= len(results) <= 5
    assert results[1].in_squat_position is True
    assert results[2].rep_event == "rep_complete"
    assert results[-1].count == [r.rep_event for r in results].count("rep_complete")


def test_render_video_missing_input(tmp_path):
    pytest.importorskip("cv2", reason="opencv-python not installed")
    with pytest.raises(RuntimeError):
        render_video_with_counter(
            str(tmp_path / "missing.mp4"),
            str(tmp_path / "out.mp4"),
            backend_factory=lambda: _ScriptedBackend([]),
            pipeline_factory=FramePipeline,
        )
