"""Tests for FaceMeshPipeline.

Models are replaced with stubs so the tests exercise only the pipeline's
own bookkeeping: the box cache, the frame-skip policy, confidence handling
and the mapping of mesh output into image space.
"""

import logging
import math

import numpy as np
import pytest
from conftest import (
    MESH_INPUT_SIZE,
    StubDetector,
    StubIrisModel,
    StubMeshModel,
    requires_opencv,
    upright_detector_box,
)

from meshtrack.geometry.coords import MESH_ANNOTATIONS
from meshtrack.geometry.transform import FIXED_ROTATION_MATRIX, transform_raw_coords
from meshtrack.models.domain import Box, FaceResult
from meshtrack.pipeline.facemesh import FaceMeshPipeline, _split_mesh_outputs, correct_face_rotation
from meshtrack.pipeline.iris import IrisModel


def make_pipeline(config, clock, detector=None, model=None):
    pipeline = FaceMeshPipeline(config, detector or StubDetector(), clock=clock)
    pipeline.model = model if model is not None else StubMeshModel()
    pipeline.input_size = pipeline.model.input_size
    return pipeline


class TestSplitMeshOutputs:
    """Tests for reading mesh model outputs."""

    def test_three_outputs(self):
        score, coords = _split_mesh_outputs(
            [np.zeros((1, 10)), np.array([[0.8]]), np.arange(1404, dtype=np.float32)]
        )

        assert score == pytest.approx(0.8)
        assert coords.shape == (468, 3)

    def test_two_outputs_any_order(self):
        score, coords = _split_mesh_outputs([np.array([0.4]), np.ones((1, 1, 1, 1404))])

        assert score == pytest.approx(0.4)
        assert coords.shape == (468, 3)

    def test_logit_confidence_squashed(self):
        score, _ = _split_mesh_outputs([np.zeros(3), np.array([2.0]), np.zeros(1404)])

        assert score == pytest.approx(1 / (1 + math.exp(-2.0)))

    def test_sigmoid_activation_in_unit_range(self):
        """A logit of 0.1 is squashed even though it looks like a probability."""
        score, _ = _split_mesh_outputs([np.zeros(3), np.array([0.1]), np.zeros(1404)], "sigmoid")

        assert score == pytest.approx(1 / (1 + math.exp(-0.1)))

    def test_no_activation_keeps_value(self):
        score, _ = _split_mesh_outputs([np.zeros(3), np.array([2.0]), np.zeros(1404)], "none")

        assert score == pytest.approx(2.0)


@requires_opencv
class TestPredictWithMesh:
    """Tests for predict() with the mesh stage enabled."""

    def test_returns_mesh_in_image_space(self, config, clock, image):
        pipeline = make_pipeline(config, clock)

        faces = pipeline.predict(image)

        assert len(faces) == 1
        face = faces[0]
        assert isinstance(face, FaceResult)
        assert face.id == 0
        assert len(face.mesh) == 468
        assert len(face.mesh_raw) == 468
        assert face.face_score == 0.9
        assert face.score == 0.9
        assert face.box_score == 0.87
        # All mesh points inside the detector-derived box (47..209)
        xs = [p[0] for p in face.mesh]
        ys = [p[1] for p in face.mesh]
        assert 47 <= min(xs) and max(xs) <= 209
        assert 47 <= min(ys) and max(ys) <= 209

    def test_mesh_model_receives_normalized_crop(self, config, clock, image):
        model = StubMeshModel()
        pipeline = make_pipeline(config, clock, model=model)

        faces = pipeline.predict(image)

        assert model.last_input.shape == (1, MESH_INPUT_SIZE, MESH_INPUT_SIZE, 3)
        assert model.last_input.max() <= 1.0
        assert faces[0].tensor is model.last_input

    def test_mesh_raw_normalized(self, config, clock, image):
        pipeline = make_pipeline(config, clock)

        face = pipeline.predict(image)[0]

        for p, raw in zip(face.mesh, face.mesh_raw):
            assert raw[0] == pytest.approx(p[0] / 256)
            assert raw[1] == pytest.approx(p[1] / 256)
            assert raw[2] == pytest.approx(p[2] / MESH_INPUT_SIZE)

    def test_annotations_skip_missing_iris(self, config, clock, image):
        pipeline = make_pipeline(config, clock)

        face = pipeline.predict(image)[0]

        assert "leftEyeIris" not in face.annotations
        assert "rightEyeIris" not in face.annotations
        assert face.annotations["noseTip"] == [face.mesh[1]]
        assert len(face.annotations["silhouette"]) == len(MESH_ANNOTATIONS["silhouette"])

    def test_box_recomputed_from_mesh(self, config, clock, image):
        """Cached box for the next frame is the enlarged, square mesh box."""
        pipeline = make_pipeline(config, clock)

        face = pipeline.predict(image)[0]

        assert len(pipeline.box_cache) == 1
        cached = pipeline.box_cache[0]
        assert cached.landmarks == face.mesh
        assert cached.confidence == face.face_score
        width = cached.end_point[0] - cached.start_point[0]
        height = cached.end_point[1] - cached.start_point[1]
        assert width == height
        assert face.box[2] > 0 and face.box[3] > 0

    def test_low_confidence_drops_box(self, config, clock, image):
        model = StubMeshModel(confidence=0.1)
        pipeline = make_pipeline(config, clock, model=model)

        faces = pipeline.predict(image)

        assert len(faces) == 1
        assert faces[0].face_score == 0.1
        assert faces[0].score == 0
        assert faces[0].mesh == []
        assert pipeline.box_cache == []

    def test_sigmoid_activation_keeps_low_logit(self, config, clock, image):
        config.face.mesh.confidence_activation = "sigmoid"
        pipeline = make_pipeline(config, clock, model=StubMeshModel(confidence=0.1))

        faces = pipeline.predict(image)

        assert faces[0].face_score == 0.52
        assert len(faces[0].mesh) == 468
        assert len(pipeline.box_cache) == 1

    def test_model_not_loaded(self, config, clock, image, caplog):
        config.debug = True
        pipeline = FaceMeshPipeline(config, StubDetector(), clock=clock)

        with caplog.at_level(logging.DEBUG, logger="meshtrack.pipeline.facemesh"):
            faces = pipeline.predict(image)

        assert len(faces) == 1
        assert faces[0].mesh == []
        assert faces[0].box_score == 0.87
        assert "model is not loaded" in caplog.text
        assert pipeline.box_cache == []

    def test_no_faces(self, config, clock, image):
        pipeline = make_pipeline(config, clock, detector=StubDetector(boxes=[]))

        assert pipeline.predict(image) == []

    def test_face_disabled(self, config, clock, image):
        config.face.enabled = False
        detector = StubDetector()
        pipeline = make_pipeline(config, clock, detector=detector)

        assert pipeline.predict(image) == []
        assert detector.calls == 0

    def test_multiple_faces_get_sequential_ids(self, config, clock):
        second = Box(
            start_point=(0.0, 0.0),
            end_point=(32.0, 32.0),
            landmarks=upright_detector_box().landmarks,
            confidence=0.6,
        )
        detector = StubDetector(boxes=[upright_detector_box(), second])
        pipeline = make_pipeline(config, clock, detector=detector)

        faces = pipeline.predict(np.zeros((256, 256, 3), dtype=np.uint8))

        assert [f.id for f in faces] == [0, 1]
        assert [f.box_score for f in faces] == [0.87, 0.6]

    def test_accepts_batched_input(self, config, clock, image):
        pipeline = make_pipeline(config, clock)

        faces = pipeline.predict(image[np.newaxis, ...])

        assert len(faces[0].mesh) == 468


@requires_opencv
class TestBoxCache:
    """Tests for the detector skip policy."""

    def test_reuses_cache_between_frames(self, config, clock, image):
        detector = StubDetector()
        pipeline = make_pipeline(config, clock, detector=detector)

        for _ in range(5):
            pipeline.predict(image)
            clock.advance(10)

        assert detector.calls == 1
        assert pipeline.skipped == 4

    def test_refresh_after_skip_frames(self, config, clock, image):
        config.face.detector.skip_frames = 2
        detector = StubDetector()
        pipeline = make_pipeline(config, clock, detector=detector)

        for _ in range(4):
            pipeline.predict(image)

        # refresh, skip, skip, refresh
        assert detector.calls == 2
        assert pipeline.skipped == 0

    def test_refresh_after_skip_time(self, config, clock, image):
        detector = StubDetector()
        pipeline = make_pipeline(config, clock, detector=detector)

        pipeline.predict(image)
        clock.advance(config.face.detector.skip_time_ms + 1)
        pipeline.predict(image)

        assert detector.calls == 2

    def test_skip_not_allowed(self, config, clock, image):
        config.skip_allowed = False
        detector = StubDetector()
        pipeline = make_pipeline(config, clock, detector=detector)

        for _ in range(3):
            pipeline.predict(image)

        assert detector.calls == 3

    def test_empty_cache_forces_refresh(self, config, clock, image):
        """A dropped face makes the next frame run the detector again."""
        detector = StubDetector()
        pipeline = make_pipeline(config, clock, detector=detector, model=StubMeshModel(confidence=0.05))

        pipeline.predict(image)
        pipeline.predict(image)

        assert detector.calls == 2

    def test_refresh_scales_and_squares_boxes(self, config, clock, image):
        detector = StubDetector()
        pipeline = make_pipeline(config, clock, detector=detector)

        pipeline._refresh_boxes(image.astype(np.float32))

        box = pipeline.box_cache[0]
        # (32..96) * 2 = (64..192), enlarged by sqrt(1.6) and squarified
        assert box.start_point == (47, 47)
        assert box.end_point == (209, 209)
        assert box.landmarks[3] == [128.0, 160.0]
        assert box.confidence == 0.87

    def test_reset_clears_state(self, config, clock, image):
        pipeline = make_pipeline(config, clock)
        pipeline.predict(image)

        pipeline.reset()

        assert pipeline.box_cache == []
        assert pipeline.model is None
        assert pipeline.input_size == 0

    def test_close_releases_detector(self, config, clock):
        detector = StubDetector()
        pipeline = make_pipeline(config, clock, detector=detector)

        pipeline.close()

        assert detector.closed
        assert pipeline.model is None


@requires_opencv
class TestPredictDetectorOnly:
    """Tests for predict() with the mesh stage disabled."""

    def test_keypoints_as_mesh(self, config, clock, image):
        config.face.mesh.enabled = False
        pipeline = FaceMeshPipeline(config, StubDetector(), clock=clock)

        face = pipeline.predict(image)[0]

        assert len(face.mesh) == 6
        assert face.mesh[3] == [128.0, 160.0, 0.0]
        assert face.annotations["mouth"] == [face.mesh[3]]
        assert face.score == face.box_score == 0.87
        assert face.box == [47, 47, 162, 162]
        assert face.box_raw == pytest.approx([47 / 256, 47 / 256, 162 / 256, 162 / 256])
        assert face.tensor.shape == (1, 128, 128, 3)

    def test_detector_runs_every_frame(self, config, clock, image):
        config.face.mesh.enabled = False
        detector = StubDetector()
        pipeline = FaceMeshPipeline(config, detector, clock=clock)

        pipeline.predict(image)
        pipeline.predict(image)

        assert detector.calls == 2


@requires_opencv
class TestRotationCorrection:
    """Tests for rotated face crops."""

    def test_upright_box_not_rotated(self, image):
        box = Box(
            start_point=(47.0, 47.0),
            end_point=(209.0, 209.0),
            landmarks=[[96, 100], [160, 100], [128, 128], [128, 160], [72, 112], [184, 112]],
        )

        angle, matrix, face = correct_face_rotation(box, image.astype(np.float32), 64)

        assert angle == pytest.approx(0.0)
        assert matrix == FIXED_ROTATION_MATRIX
        assert face.shape == (1, 64, 64, 3)

    def test_tilted_box_rotated(self, image):
        """Mouth to the lower left of the nose gives a large roll angle."""
        box = Box(
            start_point=(47.0, 47.0),
            end_point=(209.0, 209.0),
            landmarks=[[0, 0], [0, 0], [140, 120], [110, 150], [0, 0], [0, 0]],
        )

        angle, matrix, face = correct_face_rotation(box, image.astype(np.float32), 64)

        assert abs(angle) > 0.2
        assert matrix != FIXED_ROTATION_MATRIX
        assert face.shape == (1, 64, 64, 3)

    def test_rotated_crop_maps_back_to_image(self):
        """A dot located in the upright crop maps back to its image position."""
        image = np.zeros((256, 256, 3), dtype=np.float32)
        image[98:103, 148:153] = 255.0
        box = Box(
            start_point=(47.0, 47.0),
            end_point=(209.0, 209.0),
            landmarks=[[0, 0], [0, 0], [140, 120], [110, 150], [0, 0], [0, 0]],
        )

        angle, matrix, face = correct_face_rotation(box, image, 64)
        weights = face[0, :, :, 0]
        ys, xs = np.indices(weights.shape)
        centroid = [
            float((xs * weights).sum() / weights.sum()),
            float((ys * weights).sum() / weights.sum()),
            0.0,
        ]
        mapped = transform_raw_coords([centroid], box, angle, matrix, 64)

        assert angle == pytest.approx(math.pi / 4)
        assert mapped[0][0] == pytest.approx(150, abs=2)
        assert mapped[0][1] == pytest.approx(100, abs=2)

    def test_pipeline_with_rotation_enabled(self, config, clock, image):
        config.face.detector.rotation = True
        pipeline = make_pipeline(config, clock)

        faces = pipeline.predict(image)
        faces = pipeline.predict(image)

        assert len(faces[0].mesh) == 468


@requires_opencv
class TestPredictWithIris:
    """Tests for the pipeline with iris augmentation enabled."""

    def _pipeline(self, config, clock, detector):
        config.face.iris.enabled = True
        config.face.detector.rotation = True
        pipeline = make_pipeline(config, clock, detector=detector)
        pipeline.iris = IrisModel(StubIrisModel())
        return pipeline

    def test_mesh_includes_iris_points(self, config, clock, image):
        pipeline = self._pipeline(config, clock, StubDetector())

        face = pipeline.predict(image)[0]

        assert len(face.mesh) == 478
        assert len(face.mesh_raw) == 478
        assert len(face.annotations["leftEyeIris"]) == 5
        assert len(face.annotations["rightEyeIris"]) == 5
        assert face.annotations["leftEyeIris"][0] == face.mesh[468]
        assert face.annotations["rightEyeIris"][0] == face.mesh[473]

    def test_second_frame_from_cached_mesh_box(self, config, clock, image):
        detector = StubDetector()
        pipeline = self._pipeline(config, clock, detector)

        pipeline.predict(image)
        assert len(pipeline.box_cache[0].landmarks) == 478
        faces = pipeline.predict(image)

        assert detector.calls == 1
        assert len(faces[0].mesh) == 478
        assert faces[0].score > 0
        assert "rightEyeIris" in faces[0].annotations
