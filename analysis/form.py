from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Tuple

from .features import JointAngles
from .utils import SQUAT_BACK_RANGE, SQUAT_HIP_RANGE, SQUAT_KNEE_RANGE


@dataclass(frozen=True)
class FormIssue:
    category: str
    message: str

    def __str__(self) -> str:
        return f"{self.category}: {self.message}"


KNEES_TOO_BENT = FormIssue(
    "Knees Bending Too Much",
    "Watch your knee bend. Ensure your knees do not bend excessively and maintain "
    "proper alignment with your toes.",
)
HIPS_TOO_BENT = FormIssue(
    "Hips Bending Too Much",
    "Keep your hips higher. Avoid excessive hip bending by maintaining a more upright posture.",
)
BACK_TOO_LEANED = FormIssue(
    "Back Leaning Too Much",
    "Maintain a straighter back. Focus on keeping your back straight and avoid leaning "
    "forward excessively.",
)

# Reporting order is fixed: knee, hip, back
ISSUE_ORDER: Tuple[FormIssue, ...] = (KNEES_TOO_BENT, HIPS_TOO_BENT, BACK_TOO_LEANED)


@dataclass(frozen=True)
class FormVerdict:
    correct: bool
    issues: List[FormIssue] = field(default_factory=list)


def is_form_correct(knee: float, hip: float, back: float) -> bool:
    """All three angles inside the bottom-of-squat envelope (bounds inclusive)."""
    return (
        SQUAT_KNEE_RANGE.contains(knee)
        and SQUAT_HIP_RANGE.contains(hip)
        and SQUAT_BACK_RANGE.contains(back)
    )


def find_issues(knee: float, hip: float, back: float) -> List[FormIssue]:
    """
    Flag joints bent past the envelope. Only the "too much" direction is reported;
    a shallow angle above the range is not an issue.
    """
    issues: List[FormIssue] = []
    if knee < SQUAT_KNEE_RANGE.low:
        issues.append(KNEES_TOO_BENT)
    if hip < SQUAT_HIP_RANGE.low:
        issues.append(HIPS_TOO_BENT)
    if back < SQUAT_BACK_RANGE.low:
        issues.append(BACK_TOO_LEANED)
    return issues


def classify_form(angles: JointAngles) -> FormVerdict:
    """Frame verdict: both sides must be in range; issues are read from the left side."""
    correct = is_form_correct(angles.left_knee, angles.left_hip, angles.back) and is_form_correct(
        angles.right_knee, angles.right_hip, angles.back
    )
    return FormVerdict(
        correct=correct,
        issues=find_issues(angles.left_knee, angles.left_hip, angles.back),
    )
