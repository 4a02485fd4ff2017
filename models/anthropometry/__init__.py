"""
Landmark post-processing for pose detector output.
"""

from .types import Landmark, PoseLandmark, BodySide, JointType, landmarks_from_raw
from .joint_calculator import JointCalculator
from .analyzer import AnthropometryAnalyzer, AnthropometryConfig
from .accuracy_logger import PoseAccuracyLogger, AccuracyLoggerConfig
from .pipeline import StabilizationPipeline, PipelineConfig, FrameResult

__all__ = [
    'Landmark',
    'PoseLandmark',
    'BodySide',
    'JointType',
    'landmarks_from_raw',
    'JointCalculator',
    'AnthropometryAnalyzer',
    'AnthropometryConfig',
    'PoseAccuracyLogger',
    'AccuracyLoggerConfig',
    'StabilizationPipeline',
    'PipelineConfig',
    'FrameResult'
]
