import math
import time
import logging
import numpy as np
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from utils.geometry import (
    EPSILON,
    lerp,
    normalize_angle,
    radians_to_degrees,
    rotate_point,
    rotation_components,
)
from .joint_calculator import JointCalculator
from .limb_tracker import LimbPairTracker, MissingPointPredictor
from .types import (
    ARM_CHAINS,
    EXTREMITY_POINTS,
    FACE_POINTS,
    LEG_CHAINS,
    NUM_LANDMARKS,
    STABILITY_KEY_POINTS,
    UPPER_BODY_POINTS,
    BodySide,
    JointType,
    Landmark,
    PoseLandmark,
    copy_landmarks,
    landmarks_from_raw,
)

logger = logging.getLogger(__name__)

@dataclass
class AnthropometryConfig:
    """Tunables of the landmark stabilization pipeline."""
    # Frame gating
    min_processing_interval_ms: float = 0.0  # 0 disables the rate gate

    # Confidence
    visibility_threshold: float = 0.5

    # Stability fallback
    stability_key_points: Tuple[int, ...] = STABILITY_KEY_POINTS
    min_visible_key_points: int = 4
    stability_timeout_ms: float = 500.0
    unstable_point_pull: float = 0.8  # Interpolation toward the stable pose for low-visibility points
    stable_point_pull: float = 0.3  # Same for points that are still visible

    # Arm raise detection (normalized units per frame)
    arm_raise_threshold: float = 0.01

    # Crossover correction
    velocity_window_size: int = 3
    crossover_blend_factor: float = 0.7

    # Out-of-frame handling
    out_of_frame_points: Tuple[int, ...] = FACE_POINTS
    out_of_frame_decay: float = 0.7

    # Missing point prediction
    predict_face_points: bool = True
    prediction_confidence_floor: float = 0.5
    prediction_window_frames: int = 10
    prediction_decay: float = 0.85
    prediction_base_confidence: float = 0.6
    prediction_min_confidence: float = 0.1
    max_prediction_speed: float = 0.05

    # Anatomical constraints
    joint_weights: Dict[int, float] = field(default_factory=lambda: {
        PoseLandmark.NOSE: 0.6,
        PoseLandmark.LEFT_SHOULDER: 1.0,
        PoseLandmark.RIGHT_SHOULDER: 1.0,
        PoseLandmark.LEFT_HIP: 1.2,
        PoseLandmark.RIGHT_HIP: 1.2,
    })
    constraint_links: Dict[int, Tuple[int, ...]] = field(default_factory=lambda: {
        PoseLandmark.NOSE: (PoseLandmark.LEFT_SHOULDER, PoseLandmark.RIGHT_SHOULDER),
        PoseLandmark.LEFT_SHOULDER: (PoseLandmark.RIGHT_SHOULDER, PoseLandmark.LEFT_HIP, PoseLandmark.NOSE),
        PoseLandmark.RIGHT_SHOULDER: (PoseLandmark.LEFT_SHOULDER, PoseLandmark.RIGHT_HIP, PoseLandmark.NOSE),
    })
    constraint_flexibility: Dict[int, float] = field(default_factory=lambda: {
        PoseLandmark.NOSE: 0.8,
        PoseLandmark.LEFT_SHOULDER: 0.7,
        PoseLandmark.RIGHT_SHOULDER: 0.7,
    })

    # Leg stabilization
    min_knee_distance: float = 0.05

    # Orientation: (left point, right point, importance, depth along the influence chain)
    orientation_pairs: Tuple[Tuple[int, int, float, int], ...] = (
        (PoseLandmark.LEFT_HIP, PoseLandmark.RIGHT_HIP, 1.0, 0),
        (PoseLandmark.LEFT_SHOULDER, PoseLandmark.RIGHT_SHOULDER, 0.6, 1),
    )
    influence_decay: float = 0.8
    orientation_inertia: float = 0.7
    max_orientation_change: float = 45.0  # Degrees per frame
    max_rotation_per_second: float = 90.0  # 0 disables the rate limit

    # Temporal smoothing
    smoothing_window_size: int = 5

    # Proportions
    shoulder_height_ratio: float = 0.259  # Head-to-shoulder drop as a fraction of body height
    proportion_correction_strength: float = 0.15
    arm_raise_correction_scale: float = 0.3
    shoulder_width_ratio_range: Tuple[float, float] = (0.2, 0.3)

    # Joint angle limits (degrees)
    elbow_angle_range: Tuple[float, float] = (0.0, 160.0)
    knee_angle_range: Tuple[float, float] = (0.0, 170.0)

    @classmethod
    def from_settings(cls, settings, **overrides) -> "AnthropometryConfig":
        """Create a configuration from application settings, with optional overrides."""
        values = {
            'smoothing_window_size': settings.SMOOTHING_WINDOW_SIZE,
            'visibility_threshold': settings.VISIBILITY_THRESHOLD,
            'stability_timeout_ms': settings.STABILITY_TIMEOUT_MS,
            'min_processing_interval_ms': settings.MIN_PROCESSING_INTERVAL_MS,
        }
        values.update(overrides)
        return cls(**values)

class AnthropometryAnalyzer:
    """
    Stateful stabilizer for one tracked skeleton stream.

    Every admitted frame runs through a fixed sequence of corrective stages:
    crossover resolution, out-of-frame handling, missing point prediction,
    anatomical constraint relaxation, leg stabilization, orientation
    stabilization, temporal smoothing and proportion adjustment.

    Processing is causal and single-writer: the analyzer is not thread-safe
    and callers must serialize frames of one stream. Frames with fewer than
    33 landmarks are passed through unchanged.
    """

    def __init__(self, config: Optional[AnthropometryConfig] = None):
        """
        Initialize the analyzer.

        Args:
            config: Stabilization tunables
        """
        self.config = config or AnthropometryConfig()
        self.joint_calculator = JointCalculator()

        self.arm_tracker = LimbPairTracker(
            ARM_CHAINS[BodySide.LEFT], ARM_CHAINS[BodySide.RIGHT],
            window_size=self.config.velocity_window_size,
            blend_factor=self.config.crossover_blend_factor,
            visibility_threshold=self.config.visibility_threshold,
            name="arm"
        )
        self.leg_tracker = LimbPairTracker(
            LEG_CHAINS[BodySide.LEFT], LEG_CHAINS[BodySide.RIGHT],
            window_size=self.config.velocity_window_size,
            blend_factor=self.config.crossover_blend_factor,
            visibility_threshold=self.config.visibility_threshold,
            name="leg"
        )

        point_groups = [(index,) for index in EXTREMITY_POINTS]
        if self.config.predict_face_points:
            point_groups.append(FACE_POINTS)
        self.point_predictor = MissingPointPredictor(
            point_groups,
            confidence_floor=self.config.prediction_confidence_floor,
            window_frames=self.config.prediction_window_frames,
            decay=self.config.prediction_decay,
            base_confidence=self.config.prediction_base_confidence,
            min_confidence=self.config.prediction_min_confidence,
            max_speed=self.config.max_prediction_speed,
            velocity_window=self.config.velocity_window_size
        )

        self.reset()

    def reset(self):
        """Forget all history. Called when the tracked stream ends."""
        self.position_history = deque(maxlen=self.config.smoothing_window_size)
        self.arm_tracker.reset()
        self.leg_tracker.reset()
        self.point_predictor.reset()

        self.last_stable_pose: Optional[List[Landmark]] = None
        self.last_stable_time: Optional[float] = None
        self.is_stabilizing = False

        self.last_valid_orientation: Optional[float] = None
        self.last_orientation_time: Optional[float] = None

        self.last_wrist_heights: Optional[Tuple[float, float]] = None
        self.is_raising_arms = False

        self.out_of_frame_counts: Dict[int, int] = {}
        self.last_processed_time: Optional[float] = None

    # Public API

    def process_landmarks(self, landmarks: Sequence[Landmark], timestamp_ms: Optional[float] = None) -> List[Landmark]:
        """
        Apply anatomical constraints and smoothing to one skeleton frame.

        Args:
            landmarks: Skeleton frame (not modified)
            timestamp_ms: Frame timestamp in milliseconds, monotonic clock if None

        Returns:
            Corrected skeleton with the same length and indexing
        """
        if len(landmarks) < NUM_LANDMARKS:
            logger.debug(f"Passing through frame with {len(landmarks)} landmarks")
            return list(landmarks)

        now = self._now(timestamp_ms)
        if self._should_skip(now):
            logger.debug("Frame arrived before the minimum processing interval, skipped")
            return list(landmarks)
        self.last_processed_time = now

        frame = landmarks_from_raw(landmarks)

        self._detect_arm_raise(frame)

        fallback = self._check_stability(frame, now)
        if fallback is not None:
            return fallback

        self._correct_crossover(frame)
        self._handle_out_of_frame(frame)
        self._predict_missing_points(frame)
        self._apply_anatomical_constraints(frame)
        self._stabilize_legs(frame)

        orientation = self._update_orientation(self._measure_orientation(frame), now)
        self._stabilize_orientation(frame, orientation)

        smoothed = self._smooth_positions(frame)
        return self._validate_and_adjust_proportions(smoothed)

    def is_pose_valid(self, landmarks: Sequence[Landmark]) -> bool:
        """
        Check whether a pose is plausible given body proportions and joint limits.

        Not used by the pipeline itself; callers use it as an independent
        sanity check.
        """
        height = self._calculate_height(landmarks)
        shoulder_width = self._calculate_shoulder_width(landmarks)
        if height is None or shoulder_width is None or height < EPSILON:
            return False

        # Shoulder width should be roughly a quarter of the height
        min_ratio, max_ratio = self.config.shoulder_width_ratio_range
        ratio = shoulder_width / height
        if ratio < min_ratio or ratio > max_ratio:
            return False

        return self._validate_joint_angles(landmarks)

    # Stages

    def _now(self, timestamp_ms: Optional[float]) -> float:
        if timestamp_ms is not None:
            return float(timestamp_ms)
        return time.monotonic() * 1000.0

    def _should_skip(self, now: float) -> bool:
        interval = self.config.min_processing_interval_ms
        if interval <= 0 or self.last_processed_time is None:
            return False
        return now - self.last_processed_time < interval

    def _detect_arm_raise(self, landmarks: List[Landmark]) -> List[Landmark]:
        if len(landmarks) < NUM_LANDMARKS:
            return landmarks

        left_y = landmarks[PoseLandmark.LEFT_WRIST].y
        right_y = landmarks[PoseLandmark.RIGHT_WRIST].y

        # Image y grows downward, so raising means decreasing y
        if self.last_wrist_heights is not None:
            previous_left, previous_right = self.last_wrist_heights
            threshold = self.config.arm_raise_threshold
            self.is_raising_arms = (previous_left - left_y) > threshold and (previous_right - right_y) > threshold
        else:
            self.is_raising_arms = False

        self.last_wrist_heights = (left_y, right_y)
        return landmarks

    def _check_stability(self, landmarks: List[Landmark], now: float) -> Optional[List[Landmark]]:
        """
        Store stable frames, or fall back toward the last stable pose.

        Returns:
            The fallback frame when the remaining stages must be skipped,
            otherwise None
        """
        if len(landmarks) < NUM_LANDMARKS:
            return None

        threshold = self.config.visibility_threshold
        visible = sum(1 for index in self.config.stability_key_points if landmarks[index].visibility > threshold)

        if visible >= self.config.min_visible_key_points:
            self._store_stable_pose(landmarks, now)
            self.is_stabilizing = False
            return None

        self.is_stabilizing = True
        if self.last_stable_pose is None or now - self.last_stable_time > self.config.stability_timeout_ms:
            return None

        logger.debug(f"Only {visible} key points visible, interpolating toward last stable pose")
        for landmark, stable in zip(landmarks, self.last_stable_pose):
            if landmark.visibility > threshold:
                factor = self.config.stable_point_pull
            else:
                factor = self.config.unstable_point_pull
            landmark.x = lerp(landmark.x, stable.x, factor)
            landmark.y = lerp(landmark.y, stable.y, factor)
            landmark.z = lerp(landmark.z, stable.z, factor)
        return landmarks

    def _store_stable_pose(self, landmarks: List[Landmark], now: float):
        stable = copy_landmarks(landmarks)
        threshold = self.config.visibility_threshold

        # Points that are currently unreliable keep their previous stable value
        if self.last_stable_pose is not None and len(self.last_stable_pose) == len(stable):
            for index, landmark in enumerate(stable):
                if landmark.visibility < threshold or landmark.presence < threshold:
                    stable[index] = self.last_stable_pose[index].copy()

        self.last_stable_pose = stable
        self.last_stable_time = now

    def _correct_crossover(self, landmarks: List[Landmark]) -> List[Landmark]:
        if len(landmarks) < NUM_LANDMARKS:
            return landmarks
        self.arm_tracker.update(landmarks)
        return landmarks

    def _handle_out_of_frame(self, landmarks: List[Landmark]) -> List[Landmark]:
        """Decay the x of points that left the frame toward the stable pose; y is kept."""
        if len(landmarks) < NUM_LANDMARKS or self.last_stable_pose is None:
            return landmarks

        threshold = self.config.visibility_threshold
        for index in self.config.out_of_frame_points:
            landmark = landmarks[index]
            if landmark.presence >= threshold:
                self.out_of_frame_counts.pop(index, None)
                continue

            count = self.out_of_frame_counts.get(index, 0) + 1
            self.out_of_frame_counts[index] = count

            weight = 1.0 - self.config.out_of_frame_decay ** count
            landmark.x = lerp(landmark.x, self.last_stable_pose[index].x, weight)

        return landmarks

    def _predict_missing_points(self, landmarks: List[Landmark]) -> List[Landmark]:
        if len(landmarks) < NUM_LANDMARKS:
            return landmarks
        predicted = self.point_predictor.update(landmarks)
        if predicted:
            logger.debug(f"Predicted positions for points {predicted}")
        return landmarks

    def _apply_anatomical_constraints(self, landmarks: List[Landmark]) -> List[Landmark]:
        """
        Pull linked points toward the position their visible neighbours imply.

        Rest offsets between linked points come from the last stable pose.
        The pull is partial, controlled by the per-point flexibility.
        """
        if len(landmarks) < NUM_LANDMARKS or self.last_stable_pose is None:
            return landmarks

        stable = self.last_stable_pose
        threshold = self.config.visibility_threshold
        targets = {}

        for index, links in self.config.constraint_links.items():
            target_x = target_y = total_weight = 0.0
            for linked in links:
                neighbour = landmarks[linked]
                if neighbour.visibility <= threshold:
                    continue
                weight = self.config.joint_weights.get(linked, 1.0)
                target_x += (neighbour.x + stable[index].x - stable[linked].x) * weight
                target_y += (neighbour.y + stable[index].y - stable[linked].y) * weight
                total_weight += weight

            if total_weight < EPSILON:
                continue
            targets[index] = (target_x / total_weight, target_y / total_weight)

        # Targets are computed from the unmodified frame before any point moves
        for index, (target_x, target_y) in targets.items():
            pull = 1.0 - self.config.constraint_flexibility.get(index, 1.0)
            landmarks[index].x = lerp(landmarks[index].x, target_x, pull)
            landmarks[index].y = lerp(landmarks[index].y, target_y, pull)

        return landmarks

    def _stabilize_legs(self, landmarks: List[Landmark]) -> List[Landmark]:
        if len(landmarks) < NUM_LANDMARKS:
            return landmarks
        self.leg_tracker.update(landmarks)
        return self._enforce_knee_separation(landmarks)

    def _enforce_knee_separation(self, landmarks: List[Landmark]) -> List[Landmark]:
        """Push the knees apart horizontally when they are closer than the minimum."""
        left_knee = landmarks[PoseLandmark.LEFT_KNEE]
        right_knee = landmarks[PoseLandmark.RIGHT_KNEE]

        deficit = self.config.min_knee_distance - abs(left_knee.x - right_knee.x)
        if deficit <= 0:
            return landmarks

        direction = 1.0 if left_knee.x >= right_knee.x else -1.0
        left_knee.x += direction * deficit / 2
        right_knee.x -= direction * deficit / 2
        return landmarks

    def _measure_orientation(self, landmarks: Sequence[Landmark]) -> Optional[float]:
        """
        Orientation of the skeleton in degrees, from its weighted point pairs.

        Returns:
            Angle in (-180, 180] or None if no pair is visible enough
        """
        if len(landmarks) < NUM_LANDMARKS:
            return None

        threshold = self.config.visibility_threshold
        sum_cos = sum_sin = 0.0

        for first, second, importance, depth in self.config.orientation_pairs:
            a, b = landmarks[first], landmarks[second]
            visibility = min(a.visibility, b.visibility)
            if visibility <= threshold:
                continue

            dx, dy = b.x - a.x, b.y - a.y
            if math.hypot(dx, dy) < EPSILON:
                continue

            # Unit vectors avoid the wrap-around at +/-180 when averaging
            weight = visibility * importance * self.config.influence_decay ** depth
            angle = math.atan2(dy, dx)
            sum_cos += math.cos(angle) * weight
            sum_sin += math.sin(angle) * weight

        if math.hypot(sum_cos, sum_sin) < EPSILON:
            return None
        return radians_to_degrees(math.atan2(sum_sin, sum_cos))

    def _update_orientation(self, measured: Optional[float], now: float) -> Optional[float]:
        """
        Blend a measured orientation into the tracked one.

        Extreme jumps are clamped to ``max_orientation_change`` before the
        inertia blend, and the result is rate limited by
        ``max_rotation_per_second``.
        """
        if measured is None:
            return self.last_valid_orientation

        if self.last_valid_orientation is None:
            self.last_valid_orientation = measured
            self.last_orientation_time = now
            return measured

        delta = normalize_angle(measured - self.last_valid_orientation)

        max_change = self.config.max_orientation_change
        if abs(delta) > max_change:
            logger.debug(f"Clamping orientation jump of {delta:.1f} degrees")
            delta = math.copysign(max_change, delta)

        delta *= 1.0 - self.config.orientation_inertia

        if self.config.max_rotation_per_second > 0 and self.last_orientation_time is not None:
            elapsed = max(0.0, now - self.last_orientation_time) / 1000.0
            max_delta = self.config.max_rotation_per_second * elapsed
            if abs(delta) > max_delta:
                delta = math.copysign(max_delta, delta)

        self.last_valid_orientation = normalize_angle(self.last_valid_orientation + delta)
        self.last_orientation_time = now
        return self.last_valid_orientation

    def _stabilize_orientation(self, landmarks: List[Landmark], target_orientation: Optional[float]) -> List[Landmark]:
        """Rotate all points about the hip centre so that the skeleton matches the target orientation."""
        if len(landmarks) < NUM_LANDMARKS or target_orientation is None:
            return landmarks

        current = self._measure_orientation(landmarks)
        if current is None:
            return landmarks

        rotation = normalize_angle(target_orientation - current)
        if abs(rotation) < EPSILON:
            return landmarks

        left_hip = landmarks[PoseLandmark.LEFT_HIP]
        right_hip = landmarks[PoseLandmark.RIGHT_HIP]
        center_x = (left_hip.x + right_hip.x) / 2
        center_y = (left_hip.y + right_hip.y) / 2

        cos_angle, sin_angle = rotation_components(rotation)
        for landmark in landmarks:
            landmark.x, landmark.y = rotate_point(landmark.x, landmark.y, center_x, center_y, cos_angle, sin_angle)

        return landmarks

    def _smooth_positions(self, landmarks: List[Landmark]) -> List[Landmark]:
        """
        Linearly weighted moving average over the processed frame history.

        Older frames weigh less. Until the window is full the frame is
        returned as is.
        """
        if len(landmarks) < NUM_LANDMARKS:
            return landmarks

        if self.position_history and len(self.position_history[-1]) != len(landmarks):
            self.position_history.clear()

        self.position_history.append(copy_landmarks(landmarks))
        if len(self.position_history) < self.config.smoothing_window_size:
            return landmarks

        values = np.array(
            [[[p.x, p.y, p.z, p.visibility] for p in frame] for frame in self.position_history],
            dtype=float
        )
        weights = np.arange(1, len(self.position_history) + 1, dtype=float)
        averaged = np.average(values, axis=0, weights=weights)

        return [
            Landmark(
                x=float(x),
                y=float(y),
                z=float(z),
                visibility=float(visibility),
                presence=landmark.presence
            )
            for (x, y, z, visibility), landmark in zip(averaged, landmarks)
        ]

    def _validate_and_adjust_proportions(self, landmarks: List[Landmark]) -> List[Landmark]:
        """Shift the shoulders and arms vertically toward the expected body proportion."""
        height = self._calculate_height(landmarks)
        if height is None or height < EPSILON:
            return landmarks

        threshold = self.config.visibility_threshold
        reference_points = (PoseLandmark.NOSE, PoseLandmark.LEFT_ANKLE, PoseLandmark.RIGHT_ANKLE)
        if any(landmarks[index].visibility <= threshold for index in reference_points):
            return landmarks

        head_y = landmarks[PoseLandmark.NOSE].y
        bottom_y = (landmarks[PoseLandmark.LEFT_ANKLE].y + landmarks[PoseLandmark.RIGHT_ANKLE].y) / 2
        direction = 1.0 if bottom_y >= head_y else -1.0

        shoulder_y = (landmarks[PoseLandmark.LEFT_SHOULDER].y + landmarks[PoseLandmark.RIGHT_SHOULDER].y) / 2
        expected_shoulder_y = head_y + direction * height * self.config.shoulder_height_ratio

        strength = self.config.proportion_correction_strength
        if self.is_raising_arms:
            strength *= self.config.arm_raise_correction_scale

        shift = (expected_shoulder_y - shoulder_y) * strength
        for index in UPPER_BODY_POINTS:
            landmarks[index].y += shift

        return landmarks

    # Measurements

    def _calculate_height(self, landmarks: Sequence[Landmark]) -> Optional[float]:
        if len(landmarks) < NUM_LANDMARKS:
            return None

        head = landmarks[PoseLandmark.NOSE]
        bottom_y = (landmarks[PoseLandmark.LEFT_ANKLE].y + landmarks[PoseLandmark.RIGHT_ANKLE].y) / 2
        return abs(head.y - bottom_y)

    def _calculate_shoulder_width(self, landmarks: Sequence[Landmark]) -> Optional[float]:
        if len(landmarks) < NUM_LANDMARKS:
            return None
        return abs(landmarks[PoseLandmark.LEFT_SHOULDER].x - landmarks[PoseLandmark.RIGHT_SHOULDER].x)

    def _validate_joint_angles(self, landmarks: Sequence[Landmark]) -> bool:
        limits = {
            JointType.ELBOW: self.config.elbow_angle_range,
            JointType.KNEE: self.config.knee_angle_range,
        }
        for joint, (min_angle, max_angle) in limits.items():
            for side in BodySide:
                angle = self.joint_calculator.joint_angle(landmarks, joint, side)
                if angle is None or angle < min_angle or angle > max_angle:
                    return False
        return True
