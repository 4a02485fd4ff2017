import json
import numpy as np
from utils.serialization import CustomJSONResponse, sanitize_for_json
from models.anthropometry.types import Landmark, PoseLandmark

class TestSanitizeForJson:

    def test_invalid_floats_become_none(self):
        data = {"angle": float("nan"), "jitter": np.float32(np.inf), "values": np.array([1.5, np.nan])}
        assert sanitize_for_json(data) == {"angle": None, "jitter": None, "values": [1.5, None]}

    def test_numpy_scalars(self):
        assert sanitize_for_json({"count": np.int64(3), "valid": np.bool_(True)}) == {"count": 3, "valid": True}

    def test_landmarks_and_enum_keys(self):
        data = {PoseLandmark.NOSE: Landmark(x=0.5, y=0.25, visibility=0.9, presence=1.0)}
        assert sanitize_for_json(data) == {
            "NOSE": {"x": 0.5, "y": 0.25, "z": 0.0, "visibility": 0.9, "presence": 1.0}
        }

    def test_response_render(self):
        response = CustomJSONResponse(content={"poses": [[Landmark(x=0.1, y=float("nan"))]]})
        body = json.loads(response.body)
        assert body["poses"][0][0]["y"] is None
