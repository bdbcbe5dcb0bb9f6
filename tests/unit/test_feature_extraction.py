"""
Unit tests for capture processing and embedding extraction.
"""

import cv2
import numpy as np
import pytest

from truida.constants import EMBEDDING_DIM
from truida.exceptions import FeatureExtractionError
from truida.feature_extraction import (
    CaptureProcessor,
    FeatureExtractor,
    ImageGridExtractor,
)
from truida.similarity import cosine_similarity
from tests.factories import png_bytes


class ShortExtractor(FeatureExtractor):
    @property
    def name(self):
        return "short"

    def extract(self, payload):
        return [1.0, 2.0]


@pytest.mark.unit
class TestImageGridExtractor:
    """Test cases for ImageGridExtractor"""

    def test_embedding_has_schema_length_and_unit_norm(self):
        embedding = ImageGridExtractor().extract(png_bytes(1))

        assert len(embedding) == EMBEDDING_DIM
        assert np.linalg.norm(embedding) == pytest.approx(1.0)

    def test_extraction_is_deterministic(self):
        extractor = ImageGridExtractor()

        assert extractor.extract(png_bytes(4)) == extractor.extract(png_bytes(4))

    def test_similar_images_score_higher_than_unrelated(self):
        """Test that a lightly brightened image stays close to the original"""
        rng = np.random.default_rng(9)
        image = rng.integers(0, 200, size=(96, 64), dtype=np.uint8)
        brighter = (image.astype(np.int16) + 20).clip(0, 255).astype(np.uint8)
        extractor = ImageGridExtractor()

        def encode(array):
            return cv2.imencode(".png", array)[1].tobytes()

        original = extractor.extract(encode(image))
        close = extractor.extract(encode(brighter))
        unrelated = extractor.extract(png_bytes(99))

        assert cosine_similarity(original, close) > 0.99
        assert cosine_similarity(original, close) > cosine_similarity(original, unrelated)

    def test_uniform_image_yields_zero_vector(self):
        flat = cv2.imencode(".png", np.full((32, 32), 128, dtype=np.uint8))[1].tobytes()

        embedding = ImageGridExtractor().extract(flat)

        assert embedding == [0.0] * EMBEDDING_DIM

    @pytest.mark.parametrize("payload", [b"", b"definitely not a png"])
    def test_undecodable_payload_rejected(self, payload):
        with pytest.raises(FeatureExtractionError) as exc_info:
            ImageGridExtractor().extract(payload)

        assert exc_info.value.context["extraction_method"] == "image_grid"

    def test_grid_must_match_embedding_dim(self):
        with pytest.raises(FeatureExtractionError):
            ImageGridExtractor(grid_shape=(10, 10))


@pytest.mark.unit
class TestCaptureProcessor:
    """Test cases for CaptureProcessor"""

    def test_face_capture_yields_digest_and_embedding(self):
        processor = CaptureProcessor()
        payload = png_bytes(2)

        result = processor.process_face_capture(payload)

        assert result.digest == processor.hasher.digest(payload)
        assert len(result.embedding) == EMBEDDING_DIM

    def test_fingerprint_capture_has_no_embedding(self):
        result = CaptureProcessor().process_fingerprint_capture(b"ridge-data")

        assert len(result.digest) == 64
        assert result.embedding is None

    def test_empty_fingerprint_rejected(self):
        with pytest.raises(FeatureExtractionError):
            CaptureProcessor().process_fingerprint_capture(b"")

    def test_bad_extractor_output_rejected(self):
        processor = CaptureProcessor(extractor=ShortExtractor())

        with pytest.raises(FeatureExtractionError) as exc_info:
            processor.process_face_capture(png_bytes(3))

        assert exc_info.value.context["extraction_method"] == "short"
