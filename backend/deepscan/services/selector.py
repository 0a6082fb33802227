from __future__ import annotations

from typing import Iterable, List, Optional

from ..exceptions import ValidationError
from ..schemas import DetectionModel, Job, MediaCompat


def media_kind(filetype: str) -> MediaCompat:
    """Map a MIME type to the media kind models declare compatibility with."""
    major = (filetype or "").split("/", 1)[0].lower()
    if major == "video":
        return MediaCompat.VIDEO
    if major == "image":
        return MediaCompat.IMAGE
    raise ValidationError(f"Unsupported media type: {filetype!r}")


def is_compatible(model: DetectionModel, kind: MediaCompat) -> bool:
    return model.mediaCompat == MediaCompat.BOTH or model.mediaCompat == kind


def select_models(
    job: Job,
    catalog: Iterable[DetectionModel],
    explicit_model_ids: Optional[Iterable[int]] = None,
) -> List[DetectionModel]:
    """
    Choose the detection models that apply to a job.

    - explicit ids given: models with those ids that are compatible with the
      job's media kind. The active flag is ignored, so an explicit request can
      run a deactivated model. Unknown ids are dropped.
    - no explicit ids: every active, compatible model.

    An empty result is valid; the job then completes without results.
    """
    kind = media_kind(job.filetype)
    wanted = set(explicit_model_ids or ())

    if wanted:
        chosen = [m for m in catalog if m.id in wanted and is_compatible(m, kind)]
    else:
        chosen = [m for m in catalog if m.isActive and is_compatible(m, kind)]

    return sorted(chosen, key=lambda m: m.id)
