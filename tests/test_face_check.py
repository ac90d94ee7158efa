"""Tests for the selfie face-presence rules."""

import pytest

from conftest import SELFIE_B64, StubAnalyzer, good_analysis
from hrms_kernel.attendance.face_check import (
    CaptureSource,
    DetectedFace,
    FaceCheckConfig,
    FaceCheckReason,
    REQUIRED_LANDMARKS,
    check_face_presence,
    decode_selfie,
    evaluate,
)
from hrms_kernel.exceptions import FaceCheckFailedError, InputValidationError


def face(confidence=0.95, width=220, height=260, landmarks=REQUIRED_LANDMARKS):
    return DetectedFace(confidence, width, height, frozenset(landmarks))


class TestEvaluate:
    """Each rule in order."""

    def test_good_selfie_passes(self):
        result = evaluate(good_analysis())
        assert result.passed
        assert result.reason is None

    @pytest.mark.parametrize(
        "overrides,reason",
        [
            (dict(width=160, height=160), FaceCheckReason.IMAGE_TOO_SMALL),
            (dict(faces=[]), FaceCheckReason.NO_FACE),
            (dict(faces=[face(), face()]), FaceCheckReason.MULTIPLE_FACES),
            (dict(faces=[face(confidence=0.6)]), FaceCheckReason.LOW_CONFIDENCE),
            (dict(faces=[face(landmarks={"left_eye", "nose"})]), FaceCheckReason.MISSING_LANDMARKS),
            (dict(faces=[face(width=50, height=50)]), FaceCheckReason.FACE_TOO_SMALL),
            (dict(brightness=30.0), FaceCheckReason.TOO_DARK),
            (dict(brightness=235.0), FaceCheckReason.TOO_BRIGHT),
            (dict(sharpness=40.0), FaceCheckReason.BLURRY),
        ],
    )
    def test_rejections(self, overrides, reason):
        result = evaluate(good_analysis(**overrides))
        assert not result.passed
        assert result.reason == reason

    def test_missing_landmarks_named(self):
        result = evaluate(good_analysis(faces=[face(landmarks={"left_eye", "right_eye"})]))
        assert result.detail == "mouth, nose"

    def test_face_ratio_needs_only_one_dimension(self):
        # 15% of 480 is 72
        assert evaluate(good_analysis(faces=[face(width=50, height=72)])).passed

    def test_confidence_threshold_inclusive(self):
        assert evaluate(good_analysis(faces=[face(confidence=0.7)])).passed

    def test_custom_thresholds(self):
        config = FaceCheckConfig(blur_threshold=500)
        assert evaluate(good_analysis(), config).reason == FaceCheckReason.BLURRY


class TestCheckFacePresence:
    def test_passes_and_calls_analyzer(self):
        analyzer = StubAnalyzer()
        result = check_face_presence(SELFIE_B64, CaptureSource.CAMERA, analyzer)

        assert result.passed
        assert analyzer.calls == 1

    def test_file_upload_rejected_before_analysis(self):
        analyzer = StubAnalyzer()
        with pytest.raises(FaceCheckFailedError) as exc_info:
            check_face_presence(SELFIE_B64, CaptureSource.FILE, analyzer)

        assert exc_info.value.reason == FaceCheckReason.NOT_LIVE_CAPTURE
        assert analyzer.calls == 0

    def test_garbage_payload_is_unreadable(self):
        with pytest.raises(FaceCheckFailedError) as exc_info:
            check_face_presence("not base64!!", CaptureSource.CAMERA, StubAnalyzer())
        assert exc_info.value.reason == FaceCheckReason.UNREADABLE_IMAGE

    def test_failed_rule_raises_with_code(self):
        analyzer = StubAnalyzer(good_analysis(faces=[]))
        with pytest.raises(FaceCheckFailedError) as exc_info:
            check_face_presence(SELFIE_B64, "camera", analyzer)

        assert exc_info.value.code == "FACE_CHECK_FAILED"
        assert exc_info.value.reason == FaceCheckReason.NO_FACE


class TestDecodeSelfie:
    def test_plain_base64(self):
        assert decode_selfie(SELFIE_B64).startswith(b"\xff\xd8")

    def test_data_url_prefix(self):
        assert decode_selfie("data:image/jpeg;base64," + SELFIE_B64) == decode_selfie(SELFIE_B64)

    def test_empty_rejected(self):
        with pytest.raises(InputValidationError):
            decode_selfie("")
