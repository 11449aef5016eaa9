from __future__ import annotations

from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, Field


class LandmarkIn(BaseModel):
    x: float = Field(..., ge=0.0, le=1.0, allow_inf_nan=False)
    y: float = Field(..., ge=0.0, le=1.0, allow_inf_nan=False)
    visibility: float = Field(0.0, ge=0.0, le=1.0, allow_inf_nan=False)


class FrameIn(BaseModel):
    landmarks: List[Optional[LandmarkIn]] = Field(default_factory=list)


class AnglesOut(BaseModel):
    left_knee: float
    right_knee: float
    left_hip: float
    right_hip: float
    back: float


class IssueOut(BaseModel):
    category: str
    message: str


class PointMarkersOut(BaseModel):
    kind: str = "points"
    points: List[Tuple[float, float]]
    radius: int


class TextLineOut(BaseModel):
    kind: str = "text"
    text: str
    position: Tuple[int, int]


class SessionState(BaseModel):
    session_id: str
    count: int = Field(0, ge=0)
    in_squat_position: bool = False
    frames_processed: int = Field(0, ge=0)


class FrameResultOut(BaseModel):
    session_id: str
    frame_index: int
    analyzable: bool
    count: int = Field(0, ge=0)
    in_squat_position: bool
    rep_event: Optional[str] = None
    form_correct: Optional[bool] = None
    issues: List[IssueOut] = Field(default_factory=list)
    angles: Optional[AnglesOut] = None
    instructions: List[Union[PointMarkersOut, TextLineOut]] = Field(default_factory=list)


class RepRecord(BaseModel):
    frame_index: int
    exercise: str
    rep_id: int
    is_form_ok: bool
    issues: List[str] = Field(default_factory=list)
    angles: dict


class SquatSummary(BaseModel):
    total_reps: int = Field(0, ge=0)
    frames_total: int = Field(0, ge=0)
    frames_analyzed: int = Field(0, ge=0)
    frames_not_visible: int = Field(0, ge=0)
    correct_form_frames: int = Field(0, ge=0)
    common_issues: List[str] = Field(default_factory=list)


class Summary(BaseModel):
    squats: SquatSummary


class AnalyzeResponse(BaseModel):
    video_id: str
    summary: Summary
    frame_data: List[RepRecord]


class JobSubmitResponse(BaseModel):
    video_id: str
    status: str = Field(description="queued | processing | done | error")


class JobStatusResponse(BaseModel):
    video_id: str
    status: str
    detail: Optional[str] = None
    progress: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    frames_done: int = 0
    frames_total: int = 0
