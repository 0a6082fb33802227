from datetime import datetime, timedelta

import pytest

from deepscan.aggregator import (
    DEEPFAKE_THRESHOLD,
    Aggregator,
    build_report,
    format_detection_time,
    merge_manipulation_types,
    overall_confidence,
)
from deepscan.exceptions import JobNotFoundError, ReportNotFoundError
from deepscan.schemas import (
    AnalysisResult,
    AnalysisResultCreate,
    DetectionModel,
    DetectionModelCreate,
    Job,
    JobCreate,
    JobStatus,
    MediaCompat,
)
from deepscan.store.memory import InMemoryJobStore

from conftest import producer_output

T0 = datetime(2024, 3, 1, 10, 30, 15, 123456)


def make_job(status: JobStatus = JobStatus.COMPLETED) -> Job:
    return Job(
        id=42,
        filename="clip.mp4",
        filesize=2048,
        filetype="video/mp4",
        status=status,
        uploadedAt=T0,
        updatedAt=T0,
    )


def make_result(result_id, model_id, score, analyzed_at=T0, candidates=None, encoding="JPEG", duration=None):
    return AnalysisResult(
        id=result_id,
        jobId=42,
        modelId=model_id,
        analyzedAt=analyzed_at,
        **producer_output(score, candidates=candidates, encoding=encoding, duration=duration).model_dump(),
    )


MODELS = {
    1: DetectionModel(id=1, name="FaceForensics++", description="faces", mediaCompat=MediaCompat.BOTH),
    3: DetectionModel(id=3, name="CNN-LSTM", description="temporal", mediaCompat=MediaCompat.VIDEO),
}


def test_two_high_scores_average_to_deepfake():
    report = build_report(make_job(), [make_result(1, 1, 92), make_result(2, 3, 86)], MODELS)
    assert report.overallConfidence == 89
    assert report.isDeepfake is True


def test_single_low_score_is_not_deepfake():
    report = build_report(make_job(), [make_result(1, 1, 55)], MODELS)
    assert report.overallConfidence == 55
    assert report.isDeepfake is False


def test_threshold_is_strictly_greater_than():
    report = build_report(make_job(), [make_result(1, 1, DEEPFAKE_THRESHOLD)], MODELS)
    assert report.isDeepfake is False


@pytest.mark.parametrize(
    "scores, expected",
    [
        ([60, 61], 61),  # 60.5 rounds up
        ([0, 1], 1),  # 0.5 rounds up
        ([10, 10, 11], 10),  # 10.33 rounds down
        ([100, 100], 100),
        ([0], 0),
    ],
)
def test_overall_confidence_rounds_half_up(scores, expected):
    assert overall_confidence(scores) == expected


def test_manipulation_types_dedup_on_exact_pairs_only():
    results = [
        make_result(1, 1, 90, candidates=[("Face Swap", 95), ("Voice Synthesis", 56)]),
        make_result(2, 3, 80, candidates=[("Face Swap", 95), ("Face Swap", 70), ("Lip Sync", 82)]),
    ]
    merged = merge_manipulation_types(results)
    assert [(m.type, m.confidence) for m in merged] == [
        ("Face Swap", 95),
        ("Lip Sync", 82),
        ("Face Swap", 70),
        ("Voice Synthesis", 56),
    ]


def test_representative_findings_come_from_earliest_result():
    later = make_result(1, 1, 90, analyzed_at=T0 + timedelta(seconds=1), encoding="H.264")
    earlier = make_result(2, 3, 80, analyzed_at=T0, encoding="JPEG", duration="00:42")

    report = build_report(make_job(), [later, earlier], MODELS)

    assert report.metadata.technicalAnalysis.encodingFormat == "JPEG"
    assert report.metadata.fileInfo.duration == "00:42"
    assert report.detectionTime == format_detection_time(T0)
    assert [m.modelId for m in report.modelResults] == [3, 1]


def test_timestamp_ties_break_on_model_id():
    a = make_result(1, 3, 90, encoding="H.264")
    b = make_result(2, 1, 80, encoding="JPEG")

    first = build_report(make_job(), [a, b], MODELS)
    second = build_report(make_job(), [b, a], MODELS)

    assert first.metadata.technicalAnalysis.encodingFormat == "JPEG"
    assert first.model_dump_json() == second.model_dump_json()


def test_detection_time_is_iso_with_milliseconds():
    assert format_detection_time(T0) == "2024-03-01T10:30:15.123Z"


def test_model_results_shape():
    report = build_report(make_job(), [make_result(1, 1, 92)], MODELS)
    model_result = report.modelResults[0]

    assert model_result.modelName == "FaceForensics++"
    assert model_result.modelDescription == "faces"
    assert model_result.detailsData.category == "generic"
    assert report.metadata.fileInfo.filename == "clip.mp4"
    assert report.metadata.fileInfo.filesize == 2048


def test_vanished_model_is_reported_as_unknown():
    report = build_report(make_job(), [make_result(1, 77, 50)], MODELS)
    assert report.modelResults[0].modelName == "Unknown Model"
    assert report.modelResults[0].modelDescription == ""


def test_anomaly_category_is_reported_as_type():
    data = make_result(1, 1, 92).model_dump()
    data["anomalies"] = [{"category": "visual", "description": "blend seams", "severity": "high"}]
    result = AnalysisResult.model_validate(data)

    report = build_report(make_job(), [result], MODELS)
    anomaly = report.model_dump(mode="json")["modelResults"][0]["anomalies"][0]
    assert anomaly == {"type": "visual", "description": "blend seams", "severity": "high"}


async def _completed_job(store, scores):
    job = await store.create_job(JobCreate(filename="a.mp4", filesize=10, filetype="video/mp4"))
    await store.set_status(job.id, JobStatus.PROCESSING)
    for model_id, score in scores.items():
        await store.add_result(
            AnalysisResultCreate(
                jobId=job.id,
                modelId=model_id,
                analyzedAt=T0,
                **producer_output(score).model_dump(),
            )
        )
    await store.set_status(job.id, JobStatus.COMPLETED)
    return job


@pytest.mark.asyncio
async def test_aggregate_unknown_job():
    with pytest.raises(JobNotFoundError):
        await Aggregator(InMemoryJobStore()).aggregate(1)


@pytest.mark.asyncio
async def test_aggregate_job_without_results_is_not_found():
    store = InMemoryJobStore()
    pending = await store.create_job(JobCreate(filename="a.png", filesize=10, filetype="image/png"))
    empty = await _completed_job(store, {})

    aggregator = Aggregator(store)
    with pytest.raises(ReportNotFoundError):
        await aggregator.aggregate(pending.id)
    with pytest.raises(ReportNotFoundError):
        await aggregator.aggregate(empty.id)


@pytest.mark.asyncio
async def test_aggregate_hides_results_of_processing_job():
    store = InMemoryJobStore()
    job = await store.create_job(JobCreate(filename="a.png", filesize=10, filetype="image/png"))
    await store.set_status(job.id, JobStatus.PROCESSING)
    await store.add_result(
        AnalysisResultCreate(jobId=job.id, modelId=1, analyzedAt=T0, **producer_output(90).model_dump())
    )

    with pytest.raises(ReportNotFoundError):
        await Aggregator(store).aggregate(job.id)


@pytest.mark.asyncio
async def test_aggregate_is_idempotent():
    store = InMemoryJobStore()
    model = await store.create_model(DetectionModelCreate(name="FaceForensics++", mediaCompat=MediaCompat.BOTH))
    job = await _completed_job(store, {model.id: 92, 2: 86})

    aggregator = Aggregator(store)
    first = await aggregator.aggregate(job.id)
    second = await aggregator.aggregate(job.id)

    assert first.model_dump_json() == second.model_dump_json()
    assert first.overallConfidence == 89
    assert first.status == JobStatus.COMPLETED
    assert 0 <= first.overallConfidence <= 100
