import pytest
from pydantic import ValidationError

from analysis_service.domain.exceptions import RequestValidationFailed
from analysis_service.domain.models import AnalysisRequest
from analysis_service.domain.validation import is_valid_storage_path, validate_search_query

from conftest import VALID_UUID


@pytest.mark.parametrize("count", [1, 5, 10])
@pytest.mark.parametrize("ext", ["jpg", "jpeg", "png", "webp", "JPG"])
def test_accepts_valid_uuid_and_paths(count, ext):
    paths = [f"user-123/scan_{i}.{ext}" for i in range(count)]
    request = AnalysisRequest(anonymous_questionnaire_id=VALID_UUID, image_paths=paths)
    assert request.image_paths == paths


@pytest.mark.parametrize(
    "questionnaire_id",
    ["not-a-uuid", "550e8400e29b41d4a716446655440000", "550e8400-e29b-61d4-a716-446655440000", ""],
)
def test_rejects_bad_uuid(questionnaire_id):
    with pytest.raises(ValidationError):
        AnalysisRequest(anonymous_questionnaire_id=questionnaire_id, image_paths=["a/b.jpg"])


@pytest.mark.parametrize(
    "paths",
    [
        [],
        [f"img_{i}.jpg" for i in range(11)],
        ["photo.gif"],
        ["/absolute/photo.jpg"],
        ["spaces in name.jpg"],
        "photo.jpg",
        [42],
    ],
)
def test_rejects_bad_image_paths(paths):
    with pytest.raises(ValidationError):
        AnalysisRequest(anonymous_questionnaire_id=VALID_UUID, image_paths=paths)


def test_missing_image_paths_is_rejected():
    with pytest.raises(ValidationError):
        AnalysisRequest(anonymous_questionnaire_id=VALID_UUID)


@pytest.mark.parametrize("path", ["../etc/passwd.jpg", "user/../secret.png", "user//a.jpg", "./a.jpg"])
def test_relative_segments_are_rejected(path):
    assert not is_valid_storage_path(path)


def test_dots_inside_file_names_are_allowed():
    assert is_valid_storage_path("user-1/2024.05.01.face.front.jpeg")


def test_search_query_rules():
    assert validate_search_query("gentle cleanser") == "gentle cleanser"
    for bad in (None, "", "   ", 12):
        with pytest.raises(RequestValidationFailed):
            validate_search_query(bad)
    with pytest.raises(RequestValidationFailed) as exc_info:
        validate_search_query("x" * 1001)
    assert "too long" in exc_info.value.message
    assert validate_search_query("x" * 1000)
