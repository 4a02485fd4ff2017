import time
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .accuracy_logger import PoseAccuracyLogger
from .analyzer import AnthropometryAnalyzer, AnthropometryConfig
from .joint_calculator import JointCalculator
from .types import Landmark, landmarks_from_raw

logger = logging.getLogger(__name__)

# Timestamps further than this from the wall clock are stream relative
MAX_DERIVED_LATENCY_MS = 60000.0

@dataclass
class PipelineConfig:
    """Configuration for the landmark stabilization pipeline."""
    # Tracking options
    max_tracked_poses: int = 4
    track_timeout_ms: float = 1000.0  # Drop a track after this long without input

    # Analysis options
    compute_angles: bool = True
    log_angles: bool = False

    # Stabilization options
    analyzer_config: AnthropometryConfig = field(default_factory=AnthropometryConfig)

    @classmethod
    def from_settings(cls, settings, **overrides) -> "PipelineConfig":
        values = {
            'max_tracked_poses': settings.MAX_TRACKED_POSES,
            'track_timeout_ms': settings.TRACK_TIMEOUT_MS,
            'analyzer_config': AnthropometryConfig.from_settings(settings),
        }
        values.update(overrides)
        return cls(**values)

@dataclass
class FrameResult:
    """Output of one processed detector frame."""
    timestamp_ms: float
    poses: List[List[Landmark]]
    angles: List[Dict[str, float]]
    inference_time_ms: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp_ms': self.timestamp_ms,
            'inference_time_ms': self.inference_time_ms,
            'poses': [[landmark.to_dict() for landmark in pose] for pose in self.poses],
            'angles': self.angles,
        }

class _Track:
    """One tracked person slot: its analyzer and the lock serializing its frames."""

    def __init__(self, config: AnthropometryConfig):
        self.analyzer = AnthropometryAnalyzer(config)
        self.lock = threading.Lock()
        self.last_seen_ms: Optional[float] = None

class StabilizationPipeline:
    """
    StabilizationPipeline connects the stabilization modules for a detector stream.

    This class orchestrates the process:
    1. Raw detector poses are converted to landmarks with defined confidences
    2. Each person slot is stabilized by its own AnthropometryAnalyzer
    3. JointCalculator derives joint angles from the corrected skeletons
    4. PoseAccuracyLogger (when injected) observes the primary corrected pose

    Person slots share no state. Frames of one slot are serialized by a
    per-slot lock, so the pipeline can be fed from several threads.
    """

    def __init__(self, config: Optional[PipelineConfig] = None,
                 accuracy_logger: Optional[PoseAccuracyLogger] = None):
        """
        Initialize the pipeline.

        Args:
            config: Configuration for the pipeline
            accuracy_logger: Quality metrics collector owned by the caller
        """
        self.config = config or PipelineConfig()
        self.accuracy_logger = accuracy_logger
        self.joint_calculator = JointCalculator()
        # Stateless plausibility checks share one analyzer
        self._validator = AnthropometryAnalyzer(self.config.analyzer_config)

        self._tracks: Dict[int, _Track] = {}
        self._tracks_lock = threading.Lock()

    @staticmethod
    def inference_time_from_timestamp(timestamp_ms: float, now_ms: Optional[float] = None,
                                      max_latency_ms: float = MAX_DERIVED_LATENCY_MS) -> Optional[float]:
        """
        Latency of a detector result: wall clock now minus the frame timestamp.

        Returns:
            Latency in milliseconds, None if the timestamp is not on the wall clock
        """
        if now_ms is None:
            now_ms = time.time() * 1000.0
        latency = now_ms - timestamp_ms
        if abs(latency) > max_latency_ms:
            return None
        return max(0.0, latency)

    def process_frame(self, poses: Sequence[Sequence[Any]], timestamp_ms: float,
                      inference_time_ms: Optional[float] = None) -> FrameResult:
        """
        Stabilize every detected pose of one detector frame.

        Args:
            poses: Detected skeletons, one landmark sequence per person slot
            timestamp_ms: Frame timestamp in milliseconds
            inference_time_ms: Detector latency, derived from wall clock timestamps if None

        Returns:
            FrameResult with corrected poses and their joint angles
        """
        if inference_time_ms is None:
            inference_time_ms = self.inference_time_from_timestamp(timestamp_ms)

        poses = list(poses)[:self.config.max_tracked_poses]
        corrected_poses = []
        angles = []

        for slot, raw_pose in enumerate(poses):
            landmarks = landmarks_from_raw(raw_pose)
            track = self._get_track(slot)

            with track.lock:
                corrected = track.analyzer.process_landmarks(landmarks, timestamp_ms)
                track.last_seen_ms = timestamp_ms

            corrected_poses.append(corrected)

            if self.config.compute_angles:
                pose_angles = self.joint_calculator.analyze_all_joints(corrected)
                angles.append(pose_angles)
                if self.config.log_angles:
                    logger.debug(f"Pose {slot} angles: {JointCalculator.format_angle_readout(pose_angles)}")

        self._drop_stale_tracks(timestamp_ms)

        if self.accuracy_logger is not None:
            primary = corrected_poses[0] if corrected_poses else None
            self.accuracy_logger.update_metrics(primary, inference_time_ms)

        return FrameResult(
            timestamp_ms=timestamp_ms,
            poses=corrected_poses,
            angles=angles,
            inference_time_ms=inference_time_ms
        )

    def is_pose_valid(self, landmarks: Sequence[Any]) -> bool:
        """Independent plausibility check of a single skeleton."""
        return self._validator.is_pose_valid(landmarks_from_raw(landmarks))

    def _get_track(self, slot: int) -> _Track:
        with self._tracks_lock:
            track = self._tracks.get(slot)
            if track is None:
                logger.info(f"Starting track for pose slot {slot}")
                track = _Track(self.config.analyzer_config)
                self._tracks[slot] = track
            return track

    def _drop_stale_tracks(self, now_ms: float):
        timeout = self.config.track_timeout_ms
        with self._tracks_lock:
            stale = [
                slot for slot, track in self._tracks.items()
                if track.last_seen_ms is not None and now_ms - track.last_seen_ms > timeout
            ]
        for slot in stale:
            self.drop_track(slot)

    def drop_track(self, slot: int) -> bool:
        """
        End a person track and clear its state.

        Returns:
            True if the track existed
        """
        with self._tracks_lock:
            track = self._tracks.pop(slot, None)
        if track is None:
            return False

        with track.lock:
            track.analyzer.reset()
        logger.info(f"Dropped track for pose slot {slot}")
        return True

    @property
    def active_tracks(self) -> List[int]:
        with self._tracks_lock:
            return sorted(self._tracks.keys())

    def get_metrics(self) -> Dict[str, float]:
        if self.accuracy_logger is None:
            return {}
        return self.accuracy_logger.get_current_metrics()

    def reset_metrics(self):
        if self.accuracy_logger is not None:
            self.accuracy_logger.reset_metrics()

    def release(self):
        """Drop all tracks. The accuracy logger stays with its owner."""
        for slot in self.active_tracks:
            self.drop_track(slot)
