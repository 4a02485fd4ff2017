import pytest

from models.anthropometry.types import Landmark, PoseLandmark, NUM_LANDMARKS

# Front-facing standing pose in normalized image coordinates.
# Elbows and knees are slightly bent so the pose passes the joint limits.
STANDING_POSE = {
    PoseLandmark.NOSE: (0.50, 0.15),
    PoseLandmark.LEFT_EYE_INNER: (0.51, 0.13),
    PoseLandmark.LEFT_EYE: (0.52, 0.13),
    PoseLandmark.LEFT_EYE_OUTER: (0.53, 0.13),
    PoseLandmark.RIGHT_EYE_INNER: (0.49, 0.13),
    PoseLandmark.RIGHT_EYE: (0.48, 0.13),
    PoseLandmark.RIGHT_EYE_OUTER: (0.47, 0.13),
    PoseLandmark.LEFT_EAR: (0.54, 0.14),
    PoseLandmark.RIGHT_EAR: (0.46, 0.14),
    PoseLandmark.MOUTH_LEFT: (0.51, 0.18),
    PoseLandmark.MOUTH_RIGHT: (0.49, 0.18),
    PoseLandmark.LEFT_SHOULDER: (0.60, 0.28),
    PoseLandmark.RIGHT_SHOULDER: (0.40, 0.28),
    PoseLandmark.LEFT_ELBOW: (0.63, 0.42),
    PoseLandmark.RIGHT_ELBOW: (0.37, 0.42),
    PoseLandmark.LEFT_WRIST: (0.72, 0.50),
    PoseLandmark.RIGHT_WRIST: (0.28, 0.50),
    PoseLandmark.LEFT_PINKY: (0.74, 0.51),
    PoseLandmark.RIGHT_PINKY: (0.26, 0.51),
    PoseLandmark.LEFT_INDEX: (0.74, 0.50),
    PoseLandmark.RIGHT_INDEX: (0.26, 0.50),
    PoseLandmark.LEFT_THUMB: (0.73, 0.49),
    PoseLandmark.RIGHT_THUMB: (0.27, 0.49),
    PoseLandmark.LEFT_HIP: (0.56, 0.55),
    PoseLandmark.RIGHT_HIP: (0.44, 0.55),
    PoseLandmark.LEFT_KNEE: (0.59, 0.72),
    PoseLandmark.RIGHT_KNEE: (0.41, 0.72),
    PoseLandmark.LEFT_ANKLE: (0.57, 0.90),
    PoseLandmark.RIGHT_ANKLE: (0.43, 0.90),
    PoseLandmark.LEFT_HEEL: (0.56, 0.92),
    PoseLandmark.RIGHT_HEEL: (0.44, 0.92),
    PoseLandmark.LEFT_FOOT_INDEX: (0.59, 0.93),
    PoseLandmark.RIGHT_FOOT_INDEX: (0.41, 0.93),
}

def build_pose(offset_x=0.0, offset_y=0.0, visibility=0.95, overrides=None):
    """Build a 33-landmark standing skeleton, optionally shifted and with per-point overrides."""
    overrides = overrides or {}
    landmarks = []
    for index in range(NUM_LANDMARKS):
        x, y = STANDING_POSE[PoseLandmark(index)]
        landmark = Landmark(x=x + offset_x, y=y + offset_y, z=0.0, visibility=visibility, presence=1.0)
        for key, value in overrides.get(index, {}).items():
            setattr(landmark, key, value)
        landmarks.append(landmark)
    return landmarks

@pytest.fixture
def pose_factory():
    """Factory for synthetic standing skeletons."""
    return build_pose

@pytest.fixture
def standing_pose():
    return build_pose()
