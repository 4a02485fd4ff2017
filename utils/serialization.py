import math
import numpy as np
from enum import Enum
from dataclasses import asdict, is_dataclass
from fastapi.responses import JSONResponse

def _sanitize_key(key):
    # Landmark and joint tables are keyed by enums
    if isinstance(key, Enum):
        return key.name
    if isinstance(key, np.integer):
        return int(key)
    return key

def sanitize_for_json(data):
    """Sanitize data to ensure all values are JSON compliant."""
    if hasattr(data, "to_dict") and callable(data.to_dict):
        return sanitize_for_json(data.to_dict())
    elif is_dataclass(data) and not isinstance(data, type):
        return sanitize_for_json(asdict(data))
    elif isinstance(data, dict):
        return {_sanitize_key(k): sanitize_for_json(v) for k, v in data.items()}
    elif isinstance(data, (list, tuple, set)):
        return [sanitize_for_json(item) for item in data]
    elif isinstance(data, np.ndarray):
        return sanitize_for_json(data.tolist())
    elif isinstance(data, Enum):
        return data.name
    elif isinstance(data, (float, np.floating)):
        # Replace invalid values with None
        if math.isnan(data) or math.isinf(data):
            return None
        return float(data)
    elif isinstance(data, np.bool_):
        return bool(data)
    elif isinstance(data, np.integer):
        return int(data)
    return data

class CustomJSONResponse(JSONResponse):
    """JSONResponse for stabilization results: landmarks, numpy values and NaN/Inf are made JSON safe."""
    def render(self, content) -> bytes:
        return super().render(sanitize_for_json(content))
