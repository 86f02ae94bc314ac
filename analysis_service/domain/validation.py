# analysis_service/domain/validation.py
"""
Validation rules for inbound requests and tool-call search queries.

Checks raise ``RequestValidationFailed`` or ``ValueError`` (inside pydantic
validators). The model output schema lives in ``domain.models``.
"""
import re
from typing import Any, List

from analysis_service.domain.exceptions import RequestValidationFailed

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)
STORAGE_PATH_RE = re.compile(r"^[a-zA-Z0-9\-_/.]+\.(jpg|jpeg|png|webp)$", re.IGNORECASE)
ALLOWED_IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "webp")

MAX_IMAGE_PATHS = 10
MAX_QUERY_LENGTH = 1000


def is_valid_uuid(value: str) -> bool:
    return bool(UUID_RE.match(value))


def is_valid_storage_path(path: Any) -> bool:
    if not path or not isinstance(path, str):
        return False
    if path.startswith("/"):
        return False
    if not STORAGE_PATH_RE.match(path):
        return False
    # Relative segments would let a caller walk out of the bucket prefix.
    segments = path.split("/")
    return all(segment not in ("", ".", "..") for segment in segments)


def validate_image_paths(image_paths: Any, max_paths: int = MAX_IMAGE_PATHS) -> List[str]:
    if image_paths is None:
        raise ValueError("Missing required field: image_paths")
    if not isinstance(image_paths, list):
        raise ValueError("image_paths must be an array")
    if len(image_paths) == 0:
        raise ValueError("image_paths array cannot be empty")
    if len(image_paths) > max_paths:
        raise ValueError(f"Too many image paths (maximum {max_paths} allowed)")
    for i, path in enumerate(image_paths):
        if not isinstance(path, str):
            raise ValueError(f"image_paths[{i}] must be a string")
        if not is_valid_storage_path(path):
            raise ValueError(
                f"image_paths[{i}] is not a valid storage path. Must be a relative file path "
                f"with supported extension ({', '.join(ALLOWED_IMAGE_EXTENSIONS)})"
            )
    return image_paths


def validate_search_query(query: Any, max_length: int = MAX_QUERY_LENGTH) -> str:
    if not query or not isinstance(query, str):
        raise RequestValidationFailed("Search query must be a non-empty string", field="query")
    if not query.strip():
        raise RequestValidationFailed("Search query cannot be empty", field="query")
    if len(query) > max_length:
        raise RequestValidationFailed(
            f"Search query is too long (maximum {max_length} characters)", field="query"
        )
    return query
