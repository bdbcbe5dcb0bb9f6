"""
Biometric capture processing for the TRUIDA system.

This module is the boundary between capture devices and the matching engine.
A capture payload (encoded image bytes) becomes a digest for exact-match
lookup and, for faces, a fixed-length embedding for similarity ranking.

Embedding extraction is pluggable through :class:`FeatureExtractor`, so a
real face-recognition model can replace the default without touching the
engine. The default :class:`ImageGridExtractor` is a deterministic stand-in:
it does not recognise faces, but identical images always produce identical
embeddings and near-identical images produce similar ones.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

import cv2
import numpy as np
import structlog

from .constants import EMBEDDING_DIM, EMBEDDING_GRID_SHAPE
from .data_models import coerce_embedding
from .exceptions import FeatureExtractionError
from .hashing import HashingService
from .utils import short_digest

# Initialize structured logger
logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CaptureResult:
    """Digest and optional embedding derived from one capture payload."""

    digest: str
    embedding: Optional[List[float]] = None


class FeatureExtractor(ABC):
    """
    Capability interface turning a capture payload into an embedding.

    Implementations must return exactly ``EMBEDDING_DIM`` finite values for
    every payload they accept, and raise :class:`FeatureExtractionError`
    for payloads they cannot process.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier of the extraction method, reported in errors and logs."""

    @abstractmethod
    def extract(self, payload: bytes) -> List[float]:
        """Return the embedding of ``payload``."""


def decode_grayscale(payload: bytes, extraction_method: str) -> np.ndarray:
    """
    Decode encoded image bytes into a grayscale array.

    Raises
    ------
    FeatureExtractionError
        If the payload is empty or is not a decodable image.
    """
    if not payload:
        raise FeatureExtractionError(
            "Capture payload is empty", extraction_method=extraction_method
        )

    buffer = np.frombuffer(bytes(payload), dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_GRAYSCALE)

    if image is None:
        raise FeatureExtractionError(
            "Failed to decode capture. Payload may be corrupted or not an image",
            extraction_method=extraction_method,
            context={"payload_bytes": len(payload)},
        )

    return image


class ImageGridExtractor(FeatureExtractor):
    """
    Deterministic grid-intensity embedding of a grayscale image.

    The image is resized to a ``rows x cols`` grid with area interpolation,
    flattened, zero-centred and L2-normalised.

    Parameters
    ----------
    grid_shape : tuple of int, default=EMBEDDING_GRID_SHAPE
        Grid rows and columns; their product must equal ``EMBEDDING_DIM``.

    Examples
    --------
    >>> extractor = ImageGridExtractor()
    >>> len(extractor.extract(png_bytes))
    384
    """

    def __init__(self, grid_shape=EMBEDDING_GRID_SHAPE) -> None:
        rows, cols = grid_shape
        if rows * cols != EMBEDDING_DIM:
            raise FeatureExtractionError(
                f"Grid {rows}x{cols} does not yield {EMBEDDING_DIM} values",
                extraction_method="image_grid",
            )
        self.grid_shape = (rows, cols)

    @property
    def name(self) -> str:
        return "image_grid"

    def extract(self, payload: bytes) -> List[float]:
        image = decode_grayscale(payload, self.name)
        rows, cols = self.grid_shape

        # cv2.resize takes (width, height)
        grid = cv2.resize(image, (cols, rows), interpolation=cv2.INTER_AREA)
        vector = grid.astype(np.float64).ravel()
        vector -= vector.mean()

        norm = np.linalg.norm(vector)
        if norm > 0:
            vector /= norm

        logger.debug(
            "Embedding extracted",
            extraction_method=self.name,
            image_shape=image.shape,
            embedding_dim=vector.size,
        )
        return vector.tolist()


class CaptureProcessor:
    """
    Turns raw face and fingerprint captures into digests and embeddings.

    Parameters
    ----------
    hasher : HashingService, optional
        Digest service. A default SHA-256 service is created when omitted.
    extractor : FeatureExtractor, optional
        Face embedding extractor. Defaults to :class:`ImageGridExtractor`.
    """

    def __init__(
        self,
        hasher: Optional[HashingService] = None,
        extractor: Optional[FeatureExtractor] = None,
    ) -> None:
        self.hasher = hasher or HashingService()
        self.extractor = extractor or ImageGridExtractor()

    def process_face_capture(self, payload: bytes) -> CaptureResult:
        """
        Produce the digest and embedding of a face capture.

        Raises
        ------
        FeatureExtractionError
            If the payload is empty, undecodable, or the extractor returns an
            embedding of the wrong shape.
        """
        embedding = self.extractor.extract(payload)

        try:
            embedding = coerce_embedding(embedding)
        except ValueError as e:
            raise FeatureExtractionError(
                f"Extractor returned an invalid embedding: {e}",
                extraction_method=self.extractor.name,
            )

        digest = self.hasher.digest(payload)
        logger.info(
            "Face capture processed",
            face_hash=short_digest(digest),
            extraction_method=self.extractor.name,
        )
        return CaptureResult(digest=digest, embedding=embedding)

    def process_fingerprint_capture(self, payload: bytes) -> CaptureResult:
        """Produce the digest of a fingerprint capture (no embedding)."""
        if not payload:
            raise FeatureExtractionError(
                "Capture payload is empty", extraction_method="digest"
            )

        digest = self.hasher.digest(payload)
        logger.info("Fingerprint capture processed", fingerprint_hash=short_digest(digest))
        return CaptureResult(digest=digest)
