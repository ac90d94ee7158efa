"""Face-presence check for clock-event selfies.

Detection itself is delegated to a ``FaceAnalyzer`` (an on-device model in
production, a stub in tests). This module applies the acceptance rules to the
analyzer's findings, in this order:

1. live camera capture, not a file upload
2. image at least 200x200
3. at least one face, and no more than one
4. detection confidence >= 0.7
5. eyes, nose and mouth landmarks present
6. face box >= 15% of the image in width or height
7. brightness within [40, 220]
8. Laplacian variance >= 100
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, Sequence

from hrms_kernel.exceptions import FaceCheckFailedError, InputValidationError

logger = logging.getLogger(__name__)

REQUIRED_LANDMARKS = frozenset({"left_eye", "right_eye", "nose", "mouth"})


class CaptureSource(str, Enum):
    CAMERA = "camera"
    FILE = "file"


class FaceCheckReason(str, Enum):
    """Why a selfie was rejected."""

    NOT_LIVE_CAPTURE = "not_live_capture"
    UNREADABLE_IMAGE = "unreadable_image"
    IMAGE_TOO_SMALL = "image_too_small"
    NO_FACE = "no_face"
    MULTIPLE_FACES = "multiple_faces"
    LOW_CONFIDENCE = "low_confidence"
    MISSING_LANDMARKS = "missing_landmarks"
    FACE_TOO_SMALL = "face_too_small"
    TOO_DARK = "too_dark"
    TOO_BRIGHT = "too_bright"
    BLURRY = "blurry"


@dataclass(frozen=True)
class FaceCheckConfig:
    min_confidence: float = 0.7
    min_face_ratio: float = 0.15
    max_faces: int = 1
    min_width: int = 200
    min_height: int = 200
    min_brightness: float = 40
    max_brightness: float = 220
    blur_threshold: float = 100


@dataclass(frozen=True)
class DetectedFace:
    confidence: float
    width: float
    height: float
    landmarks: frozenset[str] = field(default_factory=frozenset)


@dataclass(frozen=True)
class ImageAnalysis:
    """What the analyzer found in a decoded image.

    ``brightness`` is mean luma on a 0-255 scale; ``sharpness`` is the variance
    of the Laplacian.
    """

    width: int
    height: int
    faces: Sequence[DetectedFace]
    brightness: float
    sharpness: float


class FaceAnalyzer(Protocol):
    def analyze(self, image: bytes) -> ImageAnalysis: ...


@dataclass(frozen=True)
class FaceCheckResult:
    passed: bool
    reason: FaceCheckReason | None = None
    detail: str | None = None
    analysis: ImageAnalysis | None = None


def decode_selfie(selfie_b64: str) -> bytes:
    """Decode a base64 selfie, accepting a ``data:image/...;base64,`` prefix."""
    if not selfie_b64:
        raise InputValidationError("selfie is required", "selfie")
    payload = selfie_b64.split(",", 1)[1] if selfie_b64.startswith("data:") else selfie_b64
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise InputValidationError("selfie is not valid base64", "selfie") from None


def evaluate(analysis: ImageAnalysis, config: FaceCheckConfig | None = None) -> FaceCheckResult:
    """Apply the acceptance rules to an analysis."""
    cfg = config or FaceCheckConfig()

    def fail(reason: FaceCheckReason, detail: str) -> FaceCheckResult:
        return FaceCheckResult(False, reason, detail, analysis)

    if analysis.width < cfg.min_width or analysis.height < cfg.min_height:
        return fail(
            FaceCheckReason.IMAGE_TOO_SMALL,
            f"{analysis.width}x{analysis.height} below {cfg.min_width}x{cfg.min_height}",
        )
    if not analysis.faces:
        return fail(FaceCheckReason.NO_FACE, "no face detected")
    if len(analysis.faces) > cfg.max_faces:
        return fail(FaceCheckReason.MULTIPLE_FACES, f"{len(analysis.faces)} faces detected")

    face = analysis.faces[0]
    if face.confidence < cfg.min_confidence:
        return fail(FaceCheckReason.LOW_CONFIDENCE, f"confidence {face.confidence:.2f}")
    missing = REQUIRED_LANDMARKS - set(face.landmarks)
    if missing:
        return fail(FaceCheckReason.MISSING_LANDMARKS, ", ".join(sorted(missing)))

    width_ratio = face.width / analysis.width
    height_ratio = face.height / analysis.height
    if width_ratio < cfg.min_face_ratio and height_ratio < cfg.min_face_ratio:
        return fail(
            FaceCheckReason.FACE_TOO_SMALL,
            f"face covers {max(width_ratio, height_ratio):.0%} of the image",
        )

    if analysis.brightness < cfg.min_brightness:
        return fail(FaceCheckReason.TOO_DARK, f"brightness {analysis.brightness:.0f}")
    if analysis.brightness > cfg.max_brightness:
        return fail(FaceCheckReason.TOO_BRIGHT, f"brightness {analysis.brightness:.0f}")
    if analysis.sharpness < cfg.blur_threshold:
        return fail(FaceCheckReason.BLURRY, f"sharpness {analysis.sharpness:.0f}")

    return FaceCheckResult(True, analysis=analysis)


def check_face_presence(
    selfie_b64: str,
    source: CaptureSource,
    analyzer: FaceAnalyzer,
    config: FaceCheckConfig | None = None,
) -> FaceCheckResult:
    """Run the full check on a base64 selfie.

    Raises FaceCheckFailedError on any failed rule; a malformed payload is
    reported as UNREADABLE_IMAGE.
    """
    if CaptureSource(source) is not CaptureSource.CAMERA:
        raise FaceCheckFailedError(FaceCheckReason.NOT_LIVE_CAPTURE, "file uploads are not accepted")
    try:
        image = decode_selfie(selfie_b64)
    except InputValidationError as exc:
        raise FaceCheckFailedError(FaceCheckReason.UNREADABLE_IMAGE, str(exc)) from exc

    result = evaluate(analyzer.analyze(image), config)
    if not result.passed:
        logger.info("Face check rejected selfie: %s", result.reason.value)
        raise FaceCheckFailedError(result.reason, result.detail)
    return result
