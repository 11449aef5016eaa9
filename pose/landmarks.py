from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterator, Optional, Sequence, Tuple


@dataclass(frozen=True)
class Landmark:
    x: float
    y: float
    visibility: float


class BodyLandmark(IntEnum):
    """BlazePose indices for the joints the squat analysis reads."""

    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28


# Joints that must be confidently visible before any lower-body angle is trusted
GATE_LANDMARKS: Tuple[BodyLandmark, ...] = (
    BodyLandmark.LEFT_HIP,
    BodyLandmark.RIGHT_HIP,
    BodyLandmark.LEFT_KNEE,
    BodyLandmark.RIGHT_KNEE,
)


class MissingLandmark(LookupError):
    """A required landmark is past the end of the set or was not detected."""

    def __init__(self, landmark: BodyLandmark) -> None:
        super().__init__(f"landmark {landmark.name} (index {int(landmark)}) is missing")
        self.landmark = landmark


class LandmarkSet:
    """
    One frame of landmarks from the estimator, read by BodyLandmark name.

    Items may be None (the estimator pads undetected joints); reading such an
    item, or one past the end, raises MissingLandmark.
    """

    __slots__ = ("_items",)

    def __init__(self, landmarks: Sequence[Optional[Landmark]]) -> None:
        self._items: Tuple[Optional[Landmark], ...] = tuple(landmarks)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Optional[Landmark]]:
        return iter(self._items)

    def __getitem__(self, landmark: BodyLandmark) -> Landmark:
        idx = int(landmark)
        if idx >= len(self._items) or self._items[idx] is None:
            raise MissingLandmark(BodyLandmark(landmark))
        return self._items[idx]

    def present(self) -> Iterator[Landmark]:
        """Landmarks that were actually detected, in index order."""
        return (lm for lm in self._items if lm is not None)

    @property
    def is_empty(self) -> bool:
        return all(lm is None for lm in self._items)


def is_analyzable(landmarks: LandmarkSet, min_visibility: float = 0.5) -> bool:
    """
    True when both hips and both knees are visible above min_visibility (strict).

    Raises MissingLandmark when one of them is absent.
    """
    return all(landmarks[idx].visibility > min_visibility for idx in GATE_LANDMARKS)
