from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from typing import Dict, List, Optional
import threading
import uuid

from core.config import settings
from models.anthropometry import (
    AccuracyLoggerConfig,
    AnthropometryAnalyzer,
    AnthropometryConfig,
    JointCalculator,
    PipelineConfig,
    PoseAccuracyLogger,
    StabilizationPipeline,
    landmarks_from_raw,
)
from utils.serialization import CustomJSONResponse

router = APIRouter()

# Active stabilization sessions, one pipeline per session
_sessions: Dict[str, StabilizationPipeline] = {}
_sessions_lock = threading.Lock()

# Pose validation is a pure check, one analyzer serves every request
_validator = AnthropometryAnalyzer(AnthropometryConfig.from_settings(settings))

class LandmarkModel(BaseModel):
    x: float
    y: float
    z: float = 0.0
    visibility: Optional[float] = None
    presence: Optional[float] = None

class FrameRequest(BaseModel):
    timestamp_ms: float
    inference_time_ms: Optional[float] = None
    poses: List[List[LandmarkModel]]

class PoseRequest(BaseModel):
    landmarks: List[LandmarkModel]

def _get_session(session_id: str) -> StabilizationPipeline:
    with _sessions_lock:
        pipeline = _sessions.get(session_id)
    if pipeline is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    return pipeline

@router.post("/sessions")
async def create_session():
    """Start a stabilization session with its own tracks and quality metrics."""
    session_id = str(uuid.uuid4())
    pipeline = StabilizationPipeline(
        PipelineConfig.from_settings(settings),
        accuracy_logger=PoseAccuracyLogger(AccuracyLoggerConfig.from_settings(settings))
    )
    with _sessions_lock:
        _sessions[session_id] = pipeline
    return {"session_id": session_id}

@router.post("/sessions/{session_id}/frames")
async def process_frame(session_id: str, request: FrameRequest):
    """
    Stabilize the poses of one detector frame.
    Returns corrected landmarks and joint angles for every pose.
    """
    pipeline = _get_session(session_id)
    result = pipeline.process_frame(request.poses, request.timestamp_ms, request.inference_time_ms)
    return CustomJSONResponse(content=result.to_dict())

@router.get("/sessions/{session_id}/metrics")
async def get_session_metrics(session_id: str):
    """Get current averages of the session's quality metrics."""
    pipeline = _get_session(session_id)
    return CustomJSONResponse(content={"metrics": pipeline.get_metrics()})

@router.delete("/sessions/{session_id}")
async def close_session(session_id: str):
    """End a session and drop all of its tracks."""
    with _sessions_lock:
        pipeline = _sessions.pop(session_id, None)
    if pipeline is None:
        raise HTTPException(status_code=404, detail=f"Session {session_id} not found")
    pipeline.release()
    return {"session_id": session_id, "closed": True}

@router.get("/joints")
async def get_available_joints():
    """Get list of joint angles that can be analyzed."""
    return {
        "available_joints": JointCalculator().get_available_joints()
    }

@router.post("/pose/validate")
async def validate_pose(request: PoseRequest):
    """Check a single skeleton against body proportions and joint limits."""
    return {"valid": _validator.is_pose_valid(landmarks_from_raw(request.landmarks))}
