from datetime import datetime

import pytest

from deepscan.exceptions import ValidationError
from deepscan.schemas import DetectionModel, Job, JobStatus, MediaCompat, ModelCategory
from deepscan.services.selector import media_kind, select_models


def make_job(filetype: str) -> Job:
    now = datetime(2024, 1, 1)
    return Job(
        id=1,
        filename="clip",
        filesize=1000,
        filetype=filetype,
        status=JobStatus.PENDING,
        uploadedAt=now,
        updatedAt=now,
    )


CATALOG = [
    DetectionModel(id=1, name="FaceForensics++", mediaCompat=MediaCompat.BOTH, category=ModelCategory.FACE_FORENSICS),
    DetectionModel(id=2, name="DFDC", mediaCompat=MediaCompat.VIDEO),
    DetectionModel(id=3, name="CNN-LSTM", mediaCompat=MediaCompat.VIDEO, category=ModelCategory.TEMPORAL),
    DetectionModel(id=4, name="EfficientNet-B4", mediaCompat=MediaCompat.IMAGE, category=ModelCategory.IMAGE_CLASSIFIER),
    DetectionModel(id=5, name="Retired video model", mediaCompat=MediaCompat.VIDEO, isActive=False),
]


def ids(models):
    return [m.id for m in models]


def test_media_kind_from_mime_type():
    assert media_kind("video/mp4") == MediaCompat.VIDEO
    assert media_kind("image/png") == MediaCompat.IMAGE
    with pytest.raises(ValidationError):
        media_kind("application/pdf")


def test_default_selection_uses_active_compatible_models():
    assert ids(select_models(make_job("video/mp4"), CATALOG)) == [1, 2, 3]
    assert ids(select_models(make_job("image/jpeg"), CATALOG)) == [1, 4]


def test_explicit_selection_filters_by_compatibility():
    assert ids(select_models(make_job("image/jpeg"), CATALOG, [2, 4])) == [4]


def test_explicit_selection_overrides_inactive_flag():
    assert ids(select_models(make_job("video/quicktime"), CATALOG, [5])) == [5]


def test_unknown_explicit_ids_yield_empty_selection():
    assert select_models(make_job("video/mp4"), CATALOG, [99]) == []


def test_empty_explicit_selection_means_default():
    assert ids(select_models(make_job("video/mp4"), CATALOG, [])) == [1, 2, 3]


def test_selection_is_ordered_by_model_id():
    reversed_catalog = list(reversed(CATALOG))
    assert ids(select_models(make_job("video/mp4"), reversed_catalog, [3, 1, 2])) == [1, 2, 3]
