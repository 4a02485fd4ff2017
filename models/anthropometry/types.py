from dataclasses import dataclass, replace
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Sequence, Tuple

# Number of landmarks in a MediaPipe Pose skeleton
NUM_LANDMARKS = 33

class PoseLandmark(IntEnum):
    """Fixed anatomical index of every point in a skeleton frame."""
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16
    LEFT_PINKY = 17
    RIGHT_PINKY = 18
    LEFT_INDEX = 19
    RIGHT_INDEX = 20
    LEFT_THUMB = 21
    RIGHT_THUMB = 22
    LEFT_HIP = 23
    RIGHT_HIP = 24
    LEFT_KNEE = 25
    RIGHT_KNEE = 26
    LEFT_ANKLE = 27
    RIGHT_ANKLE = 28
    LEFT_HEEL = 29
    RIGHT_HEEL = 30
    LEFT_FOOT_INDEX = 31
    RIGHT_FOOT_INDEX = 32

class BodySide(str, Enum):
    LEFT = "left"
    RIGHT = "right"

class JointType(str, Enum):
    """
    Joints whose angle can be analyzed.

    Options:
    - ELBOW: shoulder - elbow - wrist
    - KNEE: hip - knee - ankle
    - HIP: shoulder - hip - knee
    - SHOULDER: elbow - shoulder - hip
    """
    ELBOW = "elbow"
    KNEE = "knee"
    HIP = "hip"
    SHOULDER = "shoulder"

# Limb chains from torso to extremity
ARM_CHAINS: Dict[BodySide, Tuple[PoseLandmark, ...]] = {
    BodySide.LEFT: (PoseLandmark.LEFT_SHOULDER, PoseLandmark.LEFT_ELBOW, PoseLandmark.LEFT_WRIST),
    BodySide.RIGHT: (PoseLandmark.RIGHT_SHOULDER, PoseLandmark.RIGHT_ELBOW, PoseLandmark.RIGHT_WRIST),
}

LEG_CHAINS: Dict[BodySide, Tuple[PoseLandmark, ...]] = {
    BodySide.LEFT: (PoseLandmark.LEFT_HIP, PoseLandmark.LEFT_KNEE, PoseLandmark.LEFT_ANKLE),
    BodySide.RIGHT: (PoseLandmark.RIGHT_HIP, PoseLandmark.RIGHT_KNEE, PoseLandmark.RIGHT_ANKLE),
}

# Points whose visibility decides whether a frame is stable
STABILITY_KEY_POINTS: Tuple[PoseLandmark, ...] = (
    PoseLandmark.NOSE,
    PoseLandmark.LEFT_SHOULDER,
    PoseLandmark.RIGHT_SHOULDER,
    PoseLandmark.LEFT_HIP,
    PoseLandmark.RIGHT_HIP,
)

FACE_POINTS: Tuple[PoseLandmark, ...] = tuple(PoseLandmark(i) for i in range(PoseLandmark.NOSE, PoseLandmark.MOUTH_RIGHT + 1))

# Shoulders, elbows and wrists: the group moved by proportion adjustment
UPPER_BODY_POINTS: Tuple[PoseLandmark, ...] = tuple(PoseLandmark(i) for i in range(PoseLandmark.LEFT_SHOULDER, PoseLandmark.RIGHT_WRIST + 1))

EXTREMITY_POINTS: Tuple[PoseLandmark, ...] = (
    PoseLandmark.LEFT_WRIST,
    PoseLandmark.RIGHT_WRIST,
    PoseLandmark.LEFT_ANKLE,
    PoseLandmark.RIGHT_ANKLE,
)

# (first point, vertex, third point) for every analyzable joint
JOINT_DEFINITIONS: Dict[Tuple[JointType, BodySide], Tuple[PoseLandmark, PoseLandmark, PoseLandmark]] = {
    (JointType.ELBOW, BodySide.LEFT): (PoseLandmark.LEFT_SHOULDER, PoseLandmark.LEFT_ELBOW, PoseLandmark.LEFT_WRIST),
    (JointType.ELBOW, BodySide.RIGHT): (PoseLandmark.RIGHT_SHOULDER, PoseLandmark.RIGHT_ELBOW, PoseLandmark.RIGHT_WRIST),
    (JointType.KNEE, BodySide.LEFT): (PoseLandmark.LEFT_HIP, PoseLandmark.LEFT_KNEE, PoseLandmark.LEFT_ANKLE),
    (JointType.KNEE, BodySide.RIGHT): (PoseLandmark.RIGHT_HIP, PoseLandmark.RIGHT_KNEE, PoseLandmark.RIGHT_ANKLE),
    (JointType.HIP, BodySide.LEFT): (PoseLandmark.LEFT_SHOULDER, PoseLandmark.LEFT_HIP, PoseLandmark.LEFT_KNEE),
    (JointType.HIP, BodySide.RIGHT): (PoseLandmark.RIGHT_SHOULDER, PoseLandmark.RIGHT_HIP, PoseLandmark.RIGHT_KNEE),
    (JointType.SHOULDER, BodySide.LEFT): (PoseLandmark.LEFT_ELBOW, PoseLandmark.LEFT_SHOULDER, PoseLandmark.LEFT_HIP),
    (JointType.SHOULDER, BodySide.RIGHT): (PoseLandmark.RIGHT_ELBOW, PoseLandmark.RIGHT_SHOULDER, PoseLandmark.RIGHT_HIP),
}

def joint_name(joint: JointType, side: BodySide) -> str:
    """Name used as key in angle mappings, e.g. ``LEFT_ELBOW``."""
    return f"{side.value}_{joint.value}".upper()

@dataclass
class Landmark:
    """
    One body keypoint.

    Visibility and presence are always defined. Missing values are replaced
    at the ingestion boundary (``from_raw``) so that no stage needs fallbacks.
    """
    x: float
    y: float
    z: float = 0.0
    visibility: float = 1.0
    presence: float = 1.0

    @classmethod
    def from_raw(cls, raw: Any, default_confidence: float = 1.0) -> "Landmark":
        """
        Build a landmark from detector output.

        Args:
            raw: Object with x/y/z/visibility/presence attributes (e.g. a
                MediaPipe NormalizedLandmark), a mapping with the same keys,
                or a sequence (x, y[, z[, visibility[, presence]]])
            default_confidence: Value used for absent visibility/presence

        Returns:
            Landmark with defined confidences
        """
        if isinstance(raw, Landmark):
            return raw.copy()

        if isinstance(raw, dict):
            values = [raw.get(key) for key in ('x', 'y', 'z', 'visibility', 'presence')]
        elif hasattr(raw, 'x') and hasattr(raw, 'y'):
            values = [getattr(raw, key, None) for key in ('x', 'y', 'z', 'visibility', 'presence')]
        else:
            values = list(raw)[:5]
            values += [None] * (5 - len(values))

        x, y, z, visibility, presence = values
        return cls(
            x=float(x),
            y=float(y),
            z=float(z) if z is not None else 0.0,
            visibility=float(visibility) if visibility is not None else default_confidence,
            presence=float(presence) if presence is not None else default_confidence,
        )

    def copy(self) -> "Landmark":
        return replace(self)

    def to_dict(self) -> Dict[str, float]:
        return {
            'x': self.x,
            'y': self.y,
            'z': self.z,
            'visibility': self.visibility,
            'presence': self.presence,
        }

def landmarks_from_raw(raw_landmarks: Optional[Sequence[Any]], default_confidence: float = 1.0) -> List[Landmark]:
    """Convert a detector skeleton into a list of landmarks with defined confidences."""
    if not raw_landmarks:
        return []
    return [Landmark.from_raw(raw, default_confidence) for raw in raw_landmarks]

def copy_landmarks(landmarks: Sequence[Landmark]) -> List[Landmark]:
    return [landmark.copy() for landmark in landmarks]
