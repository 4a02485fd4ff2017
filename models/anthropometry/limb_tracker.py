import logging
import numpy as np
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Sequence, Tuple

from utils.geometry import add_vectors, average_vectors, chains_intersect, clamp_vector, lerp, scale_vector
from .types import Landmark

logger = logging.getLogger(__name__)

def _chain_positions(landmarks: Sequence[Landmark], chain: Sequence[int]) -> np.ndarray:
    return np.array([[landmarks[i].x, landmarks[i].y] for i in chain], dtype=float)

@dataclass
class LimbState:
    """Last valid position of one limb chain and its recent per-frame velocities."""
    velocities: Deque[np.ndarray] = field(default_factory=lambda: deque(maxlen=3))
    last_valid: Optional[np.ndarray] = None
    frames_since_valid: int = 0

    def has_history(self) -> bool:
        return self.last_valid is not None and len(self.velocities) > 0

    def predict(self) -> Optional[np.ndarray]:
        """Extrapolate the chain from its last valid position with the averaged velocity."""
        if not self.has_history():
            return None
        velocity = average_vectors(self.velocities)
        return add_vectors(self.last_valid, scale_vector(velocity, self.frames_since_valid + 1))

    def record(self, positions: np.ndarray):
        if self.last_valid is not None:
            # Spread the displacement over the frames spent without a valid reference
            displacement = add_vectors(positions, scale_vector(self.last_valid, -1.0))
            self.velocities.append(scale_vector(displacement, 1.0 / (self.frames_since_valid + 1)))
        self.last_valid = positions.copy()
        self.frames_since_valid = 0

class LimbPairTracker:
    """
    Resolves left/right identity swaps between two limb chains.

    When the chains cross, each chain is predicted from its own motion
    history and every chain point whose content fits the opposite prediction
    better is blended toward the swapped assignment. Chains that do not cross
    become the new reference positions, provided all of their points are
    visible.
    """

    def __init__(self, left_chain: Sequence[int], right_chain: Sequence[int],
                 window_size: int = 3, blend_factor: float = 0.7, visibility_threshold: float = 0.5,
                 name: str = "limb"):
        self.left_chain = tuple(left_chain)
        self.right_chain = tuple(right_chain)
        self.window_size = window_size
        self.blend_factor = blend_factor
        self.visibility_threshold = visibility_threshold
        self.name = name
        self.reset()

    def reset(self):
        self.left = LimbState(velocities=deque(maxlen=self.window_size))
        self.right = LimbState(velocities=deque(maxlen=self.window_size))

    def update(self, landmarks: List[Landmark]) -> bool:
        """
        Check the pair for a crossover and correct it in place.

        Args:
            landmarks: Skeleton frame, modified in place

        Returns:
            True if any point assignment was corrected
        """
        left_positions = _chain_positions(landmarks, self.left_chain)
        right_positions = _chain_positions(landmarks, self.right_chain)

        if not chains_intersect(left_positions, right_positions):
            self._record_if_visible(self.left, landmarks, self.left_chain, left_positions)
            self._record_if_visible(self.right, landmarks, self.right_chain, right_positions)
            return False

        predicted_left = self.left.predict()
        predicted_right = self.right.predict()
        self.left.frames_since_valid += 1
        self.right.frames_since_valid += 1

        if predicted_left is None or predicted_right is None:
            return False

        corrected = False
        for k, (left_index, right_index) in enumerate(zip(self.left_chain, self.right_chain)):
            keep_cost = (np.linalg.norm(left_positions[k] - predicted_left[k]) +
                         np.linalg.norm(right_positions[k] - predicted_right[k]))
            swap_cost = (np.linalg.norm(left_positions[k] - predicted_right[k]) +
                         np.linalg.norm(right_positions[k] - predicted_left[k]))
            if swap_cost < keep_cost:
                self._blend_swap(landmarks, left_index, right_index)
                corrected = True

        if corrected:
            logger.debug(f"Corrected {self.name} crossover")
        return corrected

    def _record_if_visible(self, state: LimbState, landmarks: List[Landmark],
                           chain: Sequence[int], positions: np.ndarray):
        # Occluded chains keep their last valid reference
        if all(landmarks[i].visibility > self.visibility_threshold for i in chain):
            state.record(positions)
        else:
            state.frames_since_valid += 1

    def _blend_swap(self, landmarks: List[Landmark], left_index: int, right_index: int):
        """Move both slots toward each other's content instead of swapping hard."""
        left = landmarks[left_index]
        right = landmarks[right_index]
        factor = self.blend_factor

        left_values = (left.x, left.y, left.z, left.visibility, left.presence)
        right_values = (right.x, right.y, right.z, right.visibility, right.presence)

        left.x = lerp(left_values[0], right_values[0], factor)
        left.y = lerp(left_values[1], right_values[1], factor)
        left.z = lerp(left_values[2], right_values[2], factor)
        left.visibility, left.presence = right_values[3], right_values[4]

        right.x = lerp(right_values[0], left_values[0], factor)
        right.y = lerp(right_values[1], left_values[1], factor)
        right.z = lerp(right_values[2], left_values[2], factor)
        right.visibility, right.presence = left_values[3], left_values[4]

@dataclass
class PointTrack:
    """History of one point, or of a group of points moving together."""
    indices: Tuple[int, ...]
    velocities: Deque[np.ndarray]
    last_valid: Optional[np.ndarray] = None
    estimate: Optional[np.ndarray] = None
    missing_frames: int = 0

class MissingPointPredictor:
    """
    Keeps low-confidence points moving along their recent trajectory.

    Each track is extrapolated with a velocity that shrinks geometrically with
    the number of consecutive missing frames. The synthesized visibility decays
    the same way, and the prediction is abandoned once it drops below
    ``min_confidence`` or the frame budget is exhausted.
    """

    def __init__(self, point_groups: Sequence[Sequence[int]], confidence_floor: float = 0.5,
                 window_frames: int = 10, decay: float = 0.85, base_confidence: float = 0.6,
                 min_confidence: float = 0.1, max_speed: float = 0.05, velocity_window: int = 3):
        self.point_groups = [tuple(group) for group in point_groups]
        self.confidence_floor = confidence_floor
        self.window_frames = window_frames
        self.decay = decay
        self.base_confidence = base_confidence
        self.min_confidence = min_confidence
        self.max_speed = max_speed
        self.velocity_window = velocity_window
        self.reset()

    def reset(self):
        self.tracks = [
            PointTrack(indices=group, velocities=deque(maxlen=self.velocity_window))
            for group in self.point_groups
        ]

    def update(self, landmarks: List[Landmark]) -> List[int]:
        """
        Record visible tracks and predict missing ones in place.

        Returns:
            Indices of the points that received a predicted position
        """
        predicted = []

        for track in self.tracks:
            points = [landmarks[i] for i in track.indices]
            positions = np.array([[p.x, p.y, p.z] for p in points], dtype=float)
            visibility = float(np.mean([p.visibility for p in points]))

            if visibility >= self.confidence_floor:
                if track.last_valid is not None and track.missing_frames == 0:
                    track.velocities.append(add_vectors(positions, scale_vector(track.last_valid, -1.0)))
                track.last_valid = positions
                track.estimate = None
                track.missing_frames = 0
                continue

            track.missing_frames += 1
            if track.last_valid is None or not track.velocities:
                continue

            decay = self.decay ** track.missing_frames
            confidence = self.base_confidence * decay
            if track.missing_frames > self.window_frames or confidence < self.min_confidence:
                continue

            # A group moves as one body: average over frames and over points
            velocity = np.mean(average_vectors(track.velocities), axis=0)
            velocity[:2] = clamp_vector(velocity[:2], self.max_speed)

            base = track.estimate if track.estimate is not None else track.last_valid
            track.estimate = add_vectors(base, scale_vector(velocity, decay))

            for row, index in enumerate(track.indices):
                landmark = landmarks[index]
                landmark.x, landmark.y, landmark.z = (float(v) for v in track.estimate[row])
                landmark.visibility = confidence
                predicted.append(index)

        return predicted
