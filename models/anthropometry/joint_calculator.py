from typing import Any, Dict, List, Optional, Sequence, Tuple

from utils.geometry import angle_degrees
from .types import (
    NUM_LANDMARKS,
    JOINT_DEFINITIONS,
    BodySide,
    JointType,
    Landmark,
    joint_name,
)

class JointCalculator:
    """
    JointCalculator handles ONLY the calculation of joint angles from landmarks.

    Responsibilities:
    - Joint angle calculations
    - Joint mapping definitions
    - Confidence scoring for calculated angles

    This class does NOT handle:
    - Landmark stabilization
    - Quality metrics
    - Rendering of the angle readout

    The calculator keeps no per-frame state; every method is a pure function
    of its input.
    """

    def __init__(self):
        """Initialize the joint calculator."""
        # Define joint mappings for angle calculations
        self.joint_mappings = self._create_joint_mappings()

    def _create_joint_mappings(self) -> Dict[str, Tuple[JointType, BodySide]]:
        """
        Create mappings from joint names to joint definitions.

        Returns:
            Dictionary of joint name -> (joint type, side)
        """
        return {joint_name(joint, side): (joint, side) for joint, side in JOINT_DEFINITIONS}

    def calculate_angle(self, a: Any, b: Any, c: Any) -> float:
        """
        Calculate the angle between three points in the image plane.

        Args:
            a: First point
            b: Second point (vertex)
            c: Third point

        Returns:
            Angle in degrees, 0 for degenerate input
        """
        return angle_degrees(a, b, c)

    def joint_angle(self, landmarks: Sequence[Landmark], joint: JointType, side: BodySide) -> Optional[float]:
        """
        Get the angle of a single joint.

        Args:
            landmarks: Skeleton frame
            joint: Joint to measure
            side: Body side of the joint

        Returns:
            Angle in degrees or None if the skeleton is incomplete
        """
        if len(landmarks) < NUM_LANDMARKS:
            return None

        first, vertex, third = JOINT_DEFINITIONS[(joint, side)]
        return self.calculate_angle(landmarks[first], landmarks[vertex], landmarks[third])

    def analyze_all_joints(self, landmarks: Sequence[Landmark]) -> Dict[str, float]:
        """
        Analyze the full pose and return all main joint angles.

        Args:
            landmarks: Skeleton frame

        Returns:
            Dictionary of joint name -> angle, empty for incomplete skeletons
        """
        angles = {}
        for name, (joint, side) in self.joint_mappings.items():
            angle = self.joint_angle(landmarks, joint, side)
            if angle is not None:
                angles[name] = angle
        return angles

    def calculate_joint_angles(self, landmarks: Sequence[Landmark],
                               joints_to_process: Optional[List[str]] = None) -> Dict[str, Dict[str, float]]:
        """
        Calculate angles for specified joints.

        Args:
            landmarks: Skeleton frame
            joints_to_process: Optional list of joints to process (all if None)

        Returns:
            Dictionary of joint angles and confidence scores
        """
        # If no specific joints provided, process all joints
        if not joints_to_process:
            joints_to_process = list(self.joint_mappings.keys())

        if len(landmarks) < NUM_LANDMARKS:
            return {}

        angles_data = {}

        for name in joints_to_process:
            if name not in self.joint_mappings:
                continue

            joint, side = self.joint_mappings[name]
            first, vertex, third = JOINT_DEFINITIONS[(joint, side)]

            # Confidence is the weakest visibility of the three points
            confidence = min(
                landmarks[first].visibility,
                landmarks[vertex].visibility,
                landmarks[third].visibility
            )

            angles_data[name] = {
                'angle': self.joint_angle(landmarks, joint, side),
                'confidence': confidence
            }

        return angles_data

    @staticmethod
    def format_angle_readout(angles: Dict[str, float]) -> str:
        """
        Format elbow and knee angles as a compact overlay readout.

        Missing joints are shown as 0.0.
        """
        return "E: %.1f/%.1f K: %.1f/%.1f" % (
            angles.get('LEFT_ELBOW', 0.0),
            angles.get('RIGHT_ELBOW', 0.0),
            angles.get('LEFT_KNEE', 0.0),
            angles.get('RIGHT_KNEE', 0.0),
        )

    def get_available_joints(self) -> List[str]:
        """
        Get list of available joint names.

        Returns:
            List of joint names
        """
        return list(self.joint_mappings.keys())
