"""
Analysis producer seam.

A producer is whatever actually scores a piece of media for one detection
model: a real inference backend, a remote service, or the simulator in
`simulated.py`. The orchestrator only depends on this interface.
"""
from __future__ import annotations

from typing import Awaitable, Callable, Protocol

from ..schemas import DetectionModel, Job, ProducerOutput


class AnalysisProducer(Protocol):
    async def __call__(self, job: Job, model: DetectionModel) -> ProducerOutput:
        ...


LatencyFn = Callable[[Job], Awaitable[None]]


def processing_delay_ms(job: Job, video_cap_ms: int = 5000, image_cap_ms: int = 3000) -> float:
    """Simulated processing time: grows with file size, capped per media kind."""
    if job.filetype.startswith("video/"):
        return min(float(video_cap_ms), job.filesize / 1000)
    return min(float(image_cap_ms), job.filesize / 2000)


async def no_delay(job: Job) -> None:
    return None
