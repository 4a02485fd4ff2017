#!/usr/bin/env python
"""
Landmark Stabilization CLI

Replays a recorded pose detector stream through the stabilization pipeline.
The input is either a JSON document ``{"frames": [...]}`` / a JSON list of
frames, or JSON Lines with one frame per line. Every frame holds
``timestamp_ms``, an optional ``inference_time_ms`` and ``poses``, a list of
33-landmark lists.
"""

import argparse
import json
import os
import logging
from datetime import datetime
from typing import Any, Dict, List

from core.config import settings
from models.anthropometry import (
    AccuracyLoggerConfig,
    PipelineConfig,
    PoseAccuracyLogger,
    StabilizationPipeline,
)
from utils.logger import LOG_FORMAT
from utils.serialization import sanitize_for_json

def setup_logging():
    """Set up logging."""
    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
    return logging.getLogger(__name__)

def load_frames(path: str) -> List[Dict[str, Any]]:
    """Read frames from a JSON or JSON Lines recording."""
    with open(path, "r", encoding="utf-8") as f:
        content = f.read()

    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        return [json.loads(line) for line in content.splitlines() if line.strip()]

    if isinstance(data, dict):
        return data.get("frames", [])
    return data

def main():
    """Main entry point."""
    logger = setup_logging()

    # Parse command-line arguments
    parser = argparse.ArgumentParser(description="Landmark Stabilization CLI")
    parser.add_argument("input_path", help="Path to the recorded landmark stream (JSON or JSON Lines)")
    parser.add_argument("--output", "-o", help="Path to save the stabilized stream (optional)")
    parser.add_argument("--max-poses", "-p", type=int, default=settings.MAX_TRACKED_POSES,
                        help="Maximum number of tracked poses")
    parser.add_argument("--smoothing-window", "-w", type=int, default=settings.SMOOTHING_WINDOW_SIZE,
                        help="Temporal smoothing window in frames")
    parser.add_argument("--metrics-dir", help="Directory for metrics snapshots (disabled if not set)")
    parser.add_argument("--log-angles", action="store_true", help="Log joint angle readouts")

    args = parser.parse_args()

    # Validate input file
    if not os.path.isfile(args.input_path):
        logger.error(f"Input file does not exist: {args.input_path}")
        return 1

    # Create default output path if not provided
    output_path = args.output
    if output_path is None:
        base_name = os.path.splitext(os.path.basename(args.input_path))[0]
        date_prefix = datetime.now().strftime("%Y%m%d_%H%M%S")
        output_path = os.path.join("output", "streams", f"{date_prefix}_stabilized_{base_name}.json")
    output_dir = os.path.dirname(output_path)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)

    try:
        frames = load_frames(args.input_path)
    except (OSError, ValueError) as e:
        logger.error(f"Could not read landmark stream: {e}")
        return 1

    logger.info(f"Processing {len(frames)} frames from: {args.input_path}")

    # Create pipeline configuration
    pipeline_config = PipelineConfig.from_settings(settings, max_tracked_poses=args.max_poses, log_angles=args.log_angles)
    pipeline_config.analyzer_config.smoothing_window_size = args.smoothing_window

    accuracy_logger = PoseAccuracyLogger(AccuracyLoggerConfig.from_settings(settings, export_dir=args.metrics_dir))
    pipeline = StabilizationPipeline(pipeline_config, accuracy_logger=accuracy_logger)

    results = []
    for frame in frames:
        result = pipeline.process_frame(
            frame.get("poses", []),
            frame["timestamp_ms"],
            frame.get("inference_time_ms")
        )
        results.append(result.to_dict())

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(sanitize_for_json({"frames": results}), f)

    # Print quality metrics
    metrics = pipeline.get_metrics()
    logger.info("Quality metrics:")
    logger.info(f"  Average inference time: {metrics.get('avg_inference_time', 0):.2f} ms")
    logger.info(f"  Average jitter: {metrics.get('avg_jitter', 0):.5f}")
    logger.info(f"  Average confidence: {metrics.get('avg_confidence', 0):.3f}")

    logger.info(f"Stabilized stream saved to: {output_path}")

    # Clean up resources
    pipeline.release()

    return 0

if __name__ == "__main__":
    exit(main())
