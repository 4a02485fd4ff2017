import os
import math
import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Deque, Dict, Optional, Sequence

from .types import Landmark

logger = logging.getLogger(__name__)

@dataclass
class AccuracyLoggerConfig:
    """Configuration for pose quality metrics."""
    enabled: bool = True
    sample_frequency: int = 10  # Sample every N-th frame
    snapshot_interval: int = 100  # Emit a snapshot every N samples
    history_limit: int = 1000  # Maximum values kept per metric
    jitter_visibility_threshold: Optional[float] = None  # None uses every point
    export_dir: Optional[str] = None  # None disables file export

    @classmethod
    def from_settings(cls, settings, **overrides) -> "AccuracyLoggerConfig":
        values = {
            'enabled': settings.METRICS_ENABLED,
            'sample_frequency': settings.METRICS_SAMPLE_FREQUENCY,
            'snapshot_interval': settings.METRICS_SNAPSHOT_INTERVAL,
            'export_dir': settings.METRICS_EXPORT_DIR,
        }
        values.update(overrides)
        return cls(**values)

class PoseAccuracyLogger:
    """
    Observes a landmark stream and aggregates quality signals.

    Tracks inter-frame jitter, average landmark confidence and inference
    latency over sampled frames. It never affects the landmarks it observes,
    and snapshot export failures are logged and swallowed.

    Safe to share between threads: all mutations happen under a lock.
    """

    def __init__(self, config: Optional[AccuracyLoggerConfig] = None):
        self.config = config or AccuracyLoggerConfig()
        self._lock = threading.Lock()
        self.reset_metrics()

    def update_metrics(self, landmarks: Optional[Sequence[Landmark]], inference_time_ms: Optional[float]):
        """
        Update metrics with a new frame.

        Args:
            landmarks: Skeleton observed in this frame (None or empty if nothing was detected)
            inference_time_ms: Detector latency for the frame, None if unknown
        """
        if not self.config.enabled:
            return

        snapshot = None
        with self._lock:
            self.frame_count += 1
            if self.frame_count % max(1, self.config.sample_frequency) != 0:
                return

            self.sample_count += 1
            if inference_time_ms is not None:
                self.inference_times.append(float(inference_time_ms))

            if landmarks:
                if self.last_landmarks:
                    jitter = self.calculate_jitter(self.last_landmarks, landmarks)
                    if jitter is not None:
                        self.jitter_values.append(jitter)

                self.confidence_values.append(self.calculate_average_confidence(landmarks))
                self.last_landmarks = [landmark.copy() for landmark in landmarks]

            if self.sample_count % max(1, self.config.snapshot_interval) == 0:
                snapshot = self._format_snapshot(self._averages())

        # Logging and file I/O happen outside the lock
        if snapshot is not None:
            logger.info(snapshot)
            self._export_to_file(snapshot)

    def calculate_jitter(self, previous: Sequence[Landmark], current: Sequence[Landmark]) -> Optional[float]:
        """
        Mean Euclidean displacement of corresponding points between two frames.

        Returns:
            Jitter value (lower is more stable), None if the frames cannot be compared
        """
        if len(previous) != len(current) or not previous:
            return None

        threshold = self.config.jitter_visibility_threshold
        total = 0.0
        counted = 0

        for before, after in zip(previous, current):
            if threshold is not None and (before.visibility <= threshold or after.visibility <= threshold):
                continue
            dx = after.x - before.x
            dy = after.y - before.y
            dz = after.z - before.z
            total += math.sqrt(dx * dx + dy * dy + dz * dz)
            counted += 1

        if counted == 0:
            return None
        return total / counted

    @staticmethod
    def calculate_average_confidence(landmarks: Sequence[Landmark]) -> float:
        if not landmarks:
            return 0.0
        return sum(landmark.visibility for landmark in landmarks) / len(landmarks)

    def get_current_metrics(self) -> Dict[str, float]:
        """
        Get current metric averages.

        Returns:
            Dictionary with avg_inference_time, avg_jitter and avg_confidence
            for the metrics that have data
        """
        with self._lock:
            return self._averages()

    def reset_metrics(self):
        """Clear all collected statistics."""
        with self._lock:
            self.frame_count = 0
            self.sample_count = 0
            self.jitter_values: Deque[float] = deque(maxlen=self.config.history_limit)
            self.confidence_values: Deque[float] = deque(maxlen=self.config.history_limit)
            self.inference_times: Deque[float] = deque(maxlen=self.config.history_limit)
            self.last_landmarks = None

    def _averages(self) -> Dict[str, float]:
        metrics = {}
        if self.inference_times:
            metrics['avg_inference_time'] = sum(self.inference_times) / len(self.inference_times)
        if self.jitter_values:
            metrics['avg_jitter'] = sum(self.jitter_values) / len(self.jitter_values)
        if self.confidence_values:
            metrics['avg_confidence'] = sum(self.confidence_values) / len(self.confidence_values)
        return metrics

    @staticmethod
    def _format_snapshot(metrics: Dict[str, float]) -> str:
        lines = ["======= POSE DETECTION METRICS ======="]
        if 'avg_inference_time' in metrics:
            lines.append(f"Average inference time: {metrics['avg_inference_time']:.2f} ms")
        if 'avg_jitter' in metrics:
            lines.append(f"Average jitter: {metrics['avg_jitter']:.5f} (lower is better)")
        if 'avg_confidence' in metrics:
            lines.append(f"Average confidence: {metrics['avg_confidence']:.3f} (higher is better)")
        lines.append("=====================================")
        return "\n".join(lines)

    def _export_to_file(self, snapshot: str) -> Optional[str]:
        """
        Write a snapshot to a timestamped text file.

        Returns:
            Path of the written file, None if export is disabled or failed
        """
        if not self.config.export_dir:
            return None

        timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        file_path = os.path.join(self.config.export_dir, f"pose_metrics_{timestamp}.txt")

        try:
            os.makedirs(self.config.export_dir, exist_ok=True)
            with open(file_path, "w", encoding="utf-8") as f:
                f.write(snapshot + "\n")
        except OSError as e:
            logger.error(f"Failed to export metrics: {e}")
            return None

        logger.info(f"Metrics exported to {file_path}")
        return file_path
