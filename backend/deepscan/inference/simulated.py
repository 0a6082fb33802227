import asyncio
import random
from typing import Dict, List, Optional

from ..logger import logger
from ..schemas import (
    Anomaly,
    DetectionModel,
    FaceForensicsDetails,
    FaceRegion,
    GenericDetails,
    ImageClassifierDetails,
    Job,
    ManipulationCandidate,
    MetadataFindings,
    ModelCategory,
    ModelDetails,
    ProducerOutput,
    Severity,
    TechnicalFindings,
    TemporalDetails,
    TimelinePoint,
)
from .base import LatencyFn, processing_delay_ms

# Categories with a fixed score; everything else draws from the score range.
FIXED_SCORES: Dict[ModelCategory, int] = {
    ModelCategory.FACE_FORENSICS: 92,
    ModelCategory.TEMPORAL: 86,
}
SCORE_RANGE = (60, 94)

ANOMALY_TEMPLATES: Dict[ModelCategory, List[Anomaly]] = {
    ModelCategory.FACE_FORENSICS: [
        Anomaly(category="visual", description="Inconsistent facial texture patterns detected around eyes and mouth regions", severity=Severity.HIGH),
        Anomaly(category="visual", description="Unnatural blending boundaries identified on facial periphery", severity=Severity.HIGH),
        Anomaly(category="lighting", description="Lighting inconsistencies between facial features", severity=Severity.MEDIUM),
    ],
    ModelCategory.TEMPORAL: [
        Anomaly(category="temporal", description="Unnatural eye blink patterns detected at 00:12-00:15", severity=Severity.HIGH),
        Anomaly(category="motion", description="Motion inconsistencies between face and body movements", severity=Severity.HIGH),
        Anomaly(category="sync", description="Audio-visual synchronization issues at multiple timestamps", severity=Severity.MEDIUM),
    ],
    ModelCategory.IMAGE_CLASSIFIER: [
        Anomaly(category="pattern", description="Unusual pixel patterns detected in background areas", severity=Severity.HIGH),
        Anomaly(category="artifacts", description="Compression artifacts inconsistent with claimed source", severity=Severity.MEDIUM),
    ],
    ModelCategory.GENERIC: [
        Anomaly(category="general", description="Multiple manipulation indicators detected", severity=Severity.HIGH),
    ],
}

MANIPULATION_CANDIDATES: List[ManipulationCandidate] = [
    ManipulationCandidate(type="Face Swap", confidence=95),
    ManipulationCandidate(type="Expression Manipulation", confidence=82),
    ManipulationCandidate(type="Voice Synthesis", confidence=56),
]


def _details_for(category: ModelCategory) -> ModelDetails:
    if category == ModelCategory.FACE_FORENSICS:
        return FaceForensicsDetails(
            heatmapData="heatmap_data_url_here",
            faceRegions=[
                FaceRegion(region="eyes", confidence=96),
                FaceRegion(region="mouth", confidence=91),
                FaceRegion(region="skin", confidence=84),
            ],
        )
    if category == ModelCategory.TEMPORAL:
        return TemporalDetails(
            timelineData=[
                TimelinePoint(timestamp="00:05", confidence=76),
                TimelinePoint(timestamp="00:12", confidence=98),
                TimelinePoint(timestamp="00:24", confidence=85),
            ],
        )
    if category == ModelCategory.IMAGE_CLASSIFIER:
        return ImageClassifierDetails()
    return GenericDetails()


class SimulatedProducer:
    """
    Stand-in for a real detection backend.

    With a seed, every (job, model) pair gets its own reproducible random
    stream, so results do not depend on the order models run in.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed

    def _rng(self, job: Job, model: DetectionModel) -> random.Random:
        if self.seed is None:
            return random.Random()
        return random.Random(f"{self.seed}:{job.id}:{model.id}")

    async def __call__(self, job: Job, model: DetectionModel) -> ProducerOutput:
        is_video = job.filetype.startswith("video/")
        category = ModelCategory(model.category)

        score = FIXED_SCORES.get(category)
        if score is None:
            score = self._rng(job, model).randint(*SCORE_RANGE)

        logger.debug(
            f"Simulated analysis for job {job.id} with model {model.id}",
            extra={"job_id": job.id, "model_id": model.id, "confidence_score": score},
        )

        return ProducerOutput(
            confidenceScore=score,
            anomalies=[a.model_copy() for a in ANOMALY_TEMPLATES[category]],
            manipulationCandidates=list(MANIPULATION_CANDIDATES),
            modelDetails=_details_for(category),
            metadataFindings=MetadataFindings(
                duration="00:42" if is_video else None,
                resolution="1920x1080",
            ),
            technicalFindings=TechnicalFindings(
                compressionLevel="High",
                compressionSuspicious=True,
                encodingFormat="H.264" if is_video else "JPEG",
                noisePattern="Irregular",
                noisePatternSuspicious=True,
                metadataConsistency="Modified",
                metadataModified=True,
            ),
        )


def sleep_latency(video_cap_ms: int = 5000, image_cap_ms: int = 3000) -> LatencyFn:
    """Latency hook that sleeps for the simulated processing time of a job."""
    async def _sleep(job: Job) -> None:
        delay_ms = processing_delay_ms(job, video_cap_ms, image_cap_ms)
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)
    return _sleep
