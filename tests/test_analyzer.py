from __future__ import annotations

import numpy as np
import pytest

from analysis.analyzer import FramePipeline, NOT_VISIBLE_TEXT, analyze_video
from pose.draw import PointMarkers, TextLine
from pose.landmarks import BodyLandmark, Landmark, LandmarkSet


def _texts(result):
    return [(i.text, i.position) for i in result.instructions if isinstance(i, TextLine)]


def test_pipeline_counts_one_rep_with_good_form(squat_pose):
    pipeline = FramePipeline()
    results = [pipeline.process(squat_pose(k, 90.0, 80.0)) for k in [160, 125, 95, 125, 160]]

    assert all(r.analyzable for r in results)
    assert [r.in_squat_position for r in results] == [False, False, True, True, False]
    assert [r.count for r in results] == [0, 0, 0, 0, 1]
    assert results[-1].rep_event == "rep_complete"
    assert pipeline.state.count == 1
    assert pipeline.state.in_squat_position is False


def test_pipeline_bad_back_never_counts(squat_pose):
    pipeline = FramePipeline()
    results = list(pipeline.run(squat_pose(k, 90.0, 60.0) for k in [160, 125, 95, 125, 160]))
    assert [r.count for r in results] == [0] * 5
    assert not any(r.in_squat_position for r in results)
    assert results[2].verdict.issues[0].category == "Back Leaning Too Much"


def test_pipeline_low_hip_visibility_is_not_analyzed(squat_pose):
    pipeline = FramePipeline()
    pipeline.process(squat_pose(160, 90.0, 80.0))
    pipeline.process(squat_pose(95, 90.0, 80.0))
    assert pipeline.state.in_squat_position is True

    # standing back up while the hips are hidden: nothing must change
    frame = squat_pose(160, 90.0, 80.0)
    hip = frame[BodyLandmark.LEFT_HIP]
    frame[BodyLandmark.LEFT_HIP] = Landmark(hip.x, hip.y, 0.3)
    result = pipeline.process(frame)

    assert result.analyzable is False
    assert result.angles is None and result.verdict is None
    assert _texts(result) == [(NOT_VISIBLE_TEXT, (50, 50))]
    assert pipeline.state.in_squat_position is True
    assert pipeline.state.count == 0


@pytest.mark.parametrize("landmarks", [None, [], [None] * 33, [Landmark(0.5, 0.5, 1.0)] * 20])
def test_pipeline_missing_pose_falls_back(landmarks):
    pipeline = FramePipeline()
    result = pipeline.process(landmarks)
    assert result.analyzable is False
    assert _texts(result) == [(NOT_VISIBLE_TEXT, (50, 50))]
    assert result.count == 0


def test_pipeline_missing_ankle_falls_back(squat_pose):
    frame = squat_pose(95, 90.0, 80.0)
    frame[BodyLandmark.LEFT_ANKLE] = None
    result = FramePipeline().process(frame)
    assert result.analyzable is False


def test_render_instructions_layout(squat_pose):
    pipeline = FramePipeline()
    good = pipeline.process(squat_pose(95, 90.0, 80.0))
    assert isinstance(good.instructions[0], PointMarkers)
    assert len(good.instructions[0].points) == 33
    assert _texts(good) == [("Squat Count: 0", (50, 50)), ("Form: Correct", (50, 100))]

    bad = pipeline.process(squat_pose(85, 75.0, 80.0))
    texts = _texts(bad)
    assert texts[:2] == [("Squat Count: 0", (50, 50)), ("Form: Incorrect", (50, 100))]
    assert [pos for _, pos in texts[2:]] == [(50, 150), (50, 200)]
    assert texts[2][0].startswith("Knees Bending Too Much: ")
    assert texts[3][0].startswith("Hips Bending Too Much: ")


def test_pipeline_reset(squat_pose):
    pipeline = FramePipeline()
    for k in [95, 160]:
        pipeline.process(squat_pose(k, 90.0, 80.0))
    assert pipeline.state.count == 1
    pipeline.reset()
    assert pipeline.state.count == 0
    assert pipeline.process(squat_pose(160, 90.0, 80.0)).frame_idx == 0


def test_pipeline_rejects_bad_visibility():
    with pytest.raises(ValueError):
        FramePipeline(min_visibility=1.5)


def test_analyze_video_schema_and_counts(squat_pose):
    frames = [
        squat_pose(160, 90.0, 80.0),
        squat_pose(95, 90.0, 80.0),   # enter
        squat_pose(160, 90.0, 80.0),  # rep 1
        None,                         # no pose detected
        squat_pose(95, 90.0, 80.0),   # enter
        squat_pose(85, 90.0, 80.0),   # knees too bent while down
        squat_pose(160, 90.0, 80.0),  # rep 2
    ]
    out = analyze_video(frames)
    assert isinstance(out["video_id"], str)

    summary = out["summary"]["squats"]
    assert summary["total_reps"] == 2
    assert summary["frames_total"] == 7
    assert summary["frames_analyzed"] == 6
    assert summary["frames_not_visible"] == 1
    assert summary["correct_form_frames"] == 2
    assert summary["common_issues"] == ["Knees Bending Too Much"]

    reps = out["frame_data"]
    assert [r["rep_id"] for r in reps] == [1, 2]
    assert [r["frame_index"] for r in reps] == [2, 6]
    assert reps[0]["is_form_ok"] is True and reps[0]["issues"] == []
    assert reps[1]["is_form_ok"] is False
    assert reps[1]["issues"] == ["Knees Bending Too Much"]
    assert reps[0]["angles"]["knee"] == pytest.approx(95.0)
    assert reps[1]["angles"]["knee"] == pytest.approx(85.0)


def test_analyze_video_empty():
    out = analyze_video([])
    assert out["summary"]["squats"]["total_reps"] == 0
    assert out["summary"]["squats"]["common_issues"] == []
    assert out["frame_data"] == []


def test_pipeline_accepts_arrays_and_landmark_sets(squat_pose):
    pipeline = FramePipeline()
    as_array = np.array(squat_pose(95, 90.0, 80.0), dtype=object)
    assert pipeline.process(as_array).in_squat_position is True

    empty = np.array([None] * 33, dtype=object)
    assert pipeline.process(empty).analyzable is False

    result = pipeline.process(LandmarkSet(squat_pose(160, 90.0, 80.0)))
    assert result.rep_event == "rep_complete"
    assert result.count == 1
