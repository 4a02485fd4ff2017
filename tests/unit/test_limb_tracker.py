import pytest
from models.anthropometry.limb_tracker import LimbPairTracker, MissingPointPredictor
from models.anthropometry.types import ARM_CHAINS, BodySide, PoseLandmark

def arm_frame(pose_factory, left_wrist_x, right_wrist_x):
    """Skeleton whose arms hang down with the given wrist positions."""
    return pose_factory(overrides={
        PoseLandmark.LEFT_SHOULDER: {'x': 0.40, 'y': 0.30},
        PoseLandmark.LEFT_ELBOW: {'x': 0.45, 'y': 0.45},
        PoseLandmark.LEFT_WRIST: {'x': left_wrist_x, 'y': 0.60},
        PoseLandmark.RIGHT_SHOULDER: {'x': 0.60, 'y': 0.30},
        PoseLandmark.RIGHT_ELBOW: {'x': 0.55, 'y': 0.45},
        PoseLandmark.RIGHT_WRIST: {'x': right_wrist_x, 'y': 0.60},
    })

class TestLimbPairTracker:

    def setup_method(self):
        """Set up test instance."""
        self.tracker = LimbPairTracker(
            ARM_CHAINS[BodySide.LEFT], ARM_CHAINS[BodySide.RIGHT],
            window_size=3, blend_factor=0.7, name="arm"
        )

    def test_non_crossing_frames_build_history(self, pose_factory):
        for k in range(3):
            corrected = self.tracker.update(arm_frame(pose_factory, 0.40 + 0.02 * k, 0.60 - 0.02 * k))
            assert corrected is False

        assert self.tracker.left.last_valid is not None
        assert len(self.tracker.left.velocities) == 2
        assert self.tracker.left.velocities[-1][2][0] == pytest.approx(0.02)
        assert self.tracker.right.velocities[-1][2][0] == pytest.approx(-0.02)

    def test_crossover_follows_velocity(self, pose_factory):
        """A wrist label swap is resolved toward the velocity-consistent identity."""
        # Wrists move toward each other without crossing
        for k in range(3):
            self.tracker.update(arm_frame(pose_factory, 0.40 + 0.02 * k, 0.60 - 0.02 * k))

        # Next frame the detector reports the wrists with swapped labels
        frame = arm_frame(pose_factory, 0.54, 0.46)
        corrected = self.tracker.update(frame)

        left_wrist = frame[PoseLandmark.LEFT_WRIST]
        right_wrist = frame[PoseLandmark.RIGHT_WRIST]

        assert corrected is True
        # Velocity predicts the left wrist at 0.46 and the right wrist at 0.54
        assert left_wrist.x == pytest.approx(0.484)
        assert right_wrist.x == pytest.approx(0.516)
        assert abs(left_wrist.x - 0.46) < abs(left_wrist.x - 0.54)
        assert abs(right_wrist.x - 0.54) < abs(right_wrist.x - 0.46)

        # Shoulders and elbows already fit their predictions
        assert frame[PoseLandmark.LEFT_ELBOW].x == pytest.approx(0.45)
        assert frame[PoseLandmark.RIGHT_ELBOW].x == pytest.approx(0.55)

    def test_crossover_without_history_is_left_alone(self, pose_factory):
        frame = arm_frame(pose_factory, 0.54, 0.46)
        assert self.tracker.update(frame) is False
        assert frame[PoseLandmark.LEFT_WRIST].x == pytest.approx(0.54)
        assert frame[PoseLandmark.RIGHT_WRIST].x == pytest.approx(0.46)

    def test_occluded_chain_keeps_reference(self, pose_factory):
        self.tracker.update(arm_frame(pose_factory, 0.40, 0.60))

        # Left elbow and wrist hidden, wrist reported far away; chains still apart
        occluded = arm_frame(pose_factory, 0.05, 0.60)
        occluded[PoseLandmark.LEFT_ELBOW].visibility = 0.01
        occluded[PoseLandmark.LEFT_WRIST].visibility = 0.01
        assert self.tracker.update(occluded) is False

        assert self.tracker.left.last_valid[2][0] == pytest.approx(0.40)
        assert len(self.tracker.left.velocities) == 0
        assert self.tracker.left.frames_since_valid == 1
        assert len(self.tracker.right.velocities) == 1

        # The next visible frame spreads the displacement over the gap
        self.tracker.update(arm_frame(pose_factory, 0.44, 0.60))
        assert self.tracker.left.velocities[-1][2][0] == pytest.approx(0.02)
        assert self.tracker.left.frames_since_valid == 0

    def test_reset(self, pose_factory):
        self.tracker.update(arm_frame(pose_factory, 0.40, 0.60))
        self.tracker.reset()
        assert self.tracker.left.last_valid is None
        assert len(self.tracker.right.velocities) == 0

class TestMissingPointPredictor:

    def setup_method(self):
        """Set up test instance."""
        self.predictor = MissingPointPredictor(
            [(PoseLandmark.LEFT_WRIST,)],
            confidence_floor=0.5,
            window_frames=10,
            decay=0.85,
            base_confidence=0.6,
            min_confidence=0.1,
            max_speed=0.05
        )

    def _feed_visible(self, pose_factory):
        for k in range(3):
            frame = pose_factory(overrides={PoseLandmark.LEFT_WRIST: {'x': 0.70 + 0.01 * k}})
            assert self.predictor.update(frame) == []

    def test_predicts_along_velocity(self, pose_factory):
        self._feed_visible(pose_factory)

        frame = pose_factory(overrides={PoseLandmark.LEFT_WRIST: {'x': 0.0, 'visibility': 0.1}})
        predicted = self.predictor.update(frame)

        wrist = frame[PoseLandmark.LEFT_WRIST]
        assert predicted == [PoseLandmark.LEFT_WRIST]
        assert wrist.x == pytest.approx(0.72 + 0.01 * 0.85)
        assert wrist.visibility == pytest.approx(0.6 * 0.85)

    def test_confidence_decays_and_prediction_stops(self, pose_factory):
        self._feed_visible(pose_factory)

        confidences = []
        for _ in range(10):
            frame = pose_factory(overrides={PoseLandmark.LEFT_WRIST: {'x': 0.0, 'visibility': 0.1}})
            assert self.predictor.update(frame) == [PoseLandmark.LEFT_WRIST]
            confidences.append(frame[PoseLandmark.LEFT_WRIST].visibility)

        assert all(later < earlier for earlier, later in zip(confidences, confidences[1:]))

        # Frame budget exhausted: the raw point is left untouched
        frame = pose_factory(overrides={PoseLandmark.LEFT_WRIST: {'x': 0.0, 'visibility': 0.1}})
        assert self.predictor.update(frame) == []
        assert frame[PoseLandmark.LEFT_WRIST].x == 0.0

    def test_no_prediction_without_history(self, pose_factory):
        frame = pose_factory(overrides={PoseLandmark.LEFT_WRIST: {'x': 0.0, 'visibility': 0.1}})
        assert self.predictor.update(frame) == []

    def test_speed_is_clamped(self, pose_factory):
        for x in (0.1, 0.4, 0.7):
            self.predictor.update(pose_factory(overrides={PoseLandmark.LEFT_WRIST: {'x': x}}))

        frame = pose_factory(overrides={PoseLandmark.LEFT_WRIST: {'visibility': 0.1}})
        self.predictor.update(frame)
        assert frame[PoseLandmark.LEFT_WRIST].x == pytest.approx(0.7 + 0.05 * 0.85)

    def test_grouped_points_move_together(self, pose_factory):
        predictor = MissingPointPredictor([(PoseLandmark.NOSE, PoseLandmark.LEFT_EYE)])
        for k in range(3):
            predictor.update(pose_factory(offset_y=0.01 * k))

        frame = pose_factory(offset_y=0.5, overrides={
            PoseLandmark.NOSE: {'visibility': 0.1},
            PoseLandmark.LEFT_EYE: {'visibility': 0.1},
        })
        predictor.update(frame)

        nose_shift = frame[PoseLandmark.NOSE].y - 0.15
        eye_shift = frame[PoseLandmark.LEFT_EYE].y - 0.13
        assert nose_shift == pytest.approx(eye_shift)
        assert nose_shift == pytest.approx(0.02 + 0.01 * 0.85)
