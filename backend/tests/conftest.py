from datetime import datetime, timedelta
from typing import Dict, List, Optional, Set, Tuple

import pytest

from deepscan.schemas import (
    DetectionModel,
    GenericDetails,
    Job,
    JobStatus,
    ManipulationCandidate,
    MetadataFindings,
    ProducerOutput,
    TechnicalFindings,
)
from deepscan.store.memory import InMemoryJobStore


class FakeClock:
    """Deterministic clock; advances by `step` on every call."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, 0), step: timedelta = timedelta(0)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        value = self.now
        self.now = self.now + self.step
        return value


class RecordingStore(InMemoryJobStore):
    """In-memory store that remembers every accepted status transition."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.history: Dict[int, List[JobStatus]] = {}

    async def create_job(self, data):
        job = await super().create_job(data)
        self.history[job.id] = [job.status]
        return job

    async def set_status(self, job_id, status):
        job = await super().set_status(job_id, status)
        self.history[job_id].append(job.status)
        return job


def technical_findings(encoding: str = "JPEG") -> TechnicalFindings:
    return TechnicalFindings(
        compressionLevel="High",
        compressionSuspicious=True,
        encodingFormat=encoding,
        noisePattern="Irregular",
        noisePatternSuspicious=True,
        metadataConsistency="Modified",
        metadataModified=True,
    )


def producer_output(
    score: int,
    candidates: Optional[List[Tuple[str, int]]] = None,
    encoding: str = "JPEG",
    duration: Optional[str] = None,
) -> ProducerOutput:
    return ProducerOutput(
        confidenceScore=score,
        manipulationCandidates=[
            ManipulationCandidate(type=t, confidence=c) for t, c in (candidates or [])
        ],
        modelDetails=GenericDetails(),
        metadataFindings=MetadataFindings(duration=duration, resolution="1920x1080"),
        technicalFindings=technical_findings(encoding),
    )


class ScriptedProducer:
    """Producer returning fixed scores per model id and raising for `fail_on`."""

    def __init__(self, scores: Optional[Dict[int, int]] = None, fail_on: Optional[Set[int]] = None, default: int = 70):
        self.scores = scores or {}
        self.fail_on = fail_on or set()
        self.default = default
        self.calls: List[Tuple[int, int]] = []

    async def __call__(self, job: Job, model: DetectionModel) -> ProducerOutput:
        self.calls.append((job.id, model.id))
        if model.id in self.fail_on:
            raise RuntimeError(f"model {model.id} crashed")
        return producer_output(self.scores.get(model.id, self.default))


@pytest.fixture
def clock():
    return FakeClock(step=timedelta(milliseconds=10))


@pytest.fixture
def store(clock):
    return RecordingStore(clock=clock)
