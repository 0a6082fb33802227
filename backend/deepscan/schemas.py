"""
Pydantic schemas for jobs, detection models, per-model results and reports
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, List, Literal, Optional, Union
from datetime import datetime
from enum import Enum

Confidence = Annotated[int, Field(ge=0, le=100, strict=True)]

# ===== Enums =====

class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

class MediaCompat(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    BOTH = "both"

class ModelCategory(str, Enum):
    FACE_FORENSICS = "face_forensics"
    TEMPORAL = "temporal"
    IMAGE_CLASSIFIER = "image_classifier"
    GENERIC = "generic"

class Severity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

# ===== Job Schemas =====

class JobCreate(BaseModel):
    filename: str = Field(min_length=1)
    filesize: int = Field(ge=0)
    filetype: str = Field(min_length=1)
    userId: Optional[int] = None

class Job(BaseModel):
    id: int
    filename: str
    filesize: int
    filetype: str
    status: JobStatus
    uploadedAt: datetime
    updatedAt: datetime
    userId: Optional[int] = None

class JobStatusResponse(BaseModel):
    status: JobStatus

class JobAccepted(BaseModel):
    message: str
    mediaId: int

# ===== Detection Model Schemas =====

class DetectionModelCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    mediaCompat: MediaCompat
    category: ModelCategory = ModelCategory.GENERIC
    isActive: bool = True

class DetectionModel(DetectionModelCreate):
    id: int

# ===== Finding Schemas =====

class Anomaly(BaseModel):
    category: str
    description: str
    severity: Severity

class ManipulationCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    confidence: Confidence

class MetadataFindings(BaseModel):
    duration: Optional[str] = None
    resolution: Optional[str] = None

class TechnicalFindings(BaseModel):
    compressionLevel: str
    compressionSuspicious: bool
    encodingFormat: str
    noisePattern: str
    noisePatternSuspicious: bool
    metadataConsistency: str
    metadataModified: bool

# ===== Model Details (one shape per model category) =====

class FaceRegion(BaseModel):
    region: str
    confidence: Confidence

class TimelinePoint(BaseModel):
    timestamp: str
    confidence: Confidence

class FaceForensicsDetails(BaseModel):
    category: Literal["face_forensics"] = "face_forensics"
    heatmapData: str
    faceRegions: List[FaceRegion]

class TemporalDetails(BaseModel):
    category: Literal["temporal"] = "temporal"
    timelineData: List[TimelinePoint]

class ImageClassifierDetails(BaseModel):
    category: Literal["image_classifier"] = "image_classifier"

class GenericDetails(BaseModel):
    category: Literal["generic"] = "generic"

ModelDetails = Annotated[
    Union[FaceForensicsDetails, TemporalDetails, ImageClassifierDetails, GenericDetails],
    Field(discriminator="category"),
]

# ===== Analysis Result Schemas =====

class ProducerOutput(BaseModel):
    """Payload returned by a detection model for one job."""
    confidenceScore: Confidence
    anomalies: List[Anomaly] = []
    manipulationCandidates: List[ManipulationCandidate] = []
    modelDetails: ModelDetails
    metadataFindings: MetadataFindings = Field(default_factory=MetadataFindings)
    technicalFindings: TechnicalFindings

class AnalysisResultCreate(ProducerOutput):
    jobId: int
    modelId: int
    analyzedAt: datetime

class AnalysisResult(AnalysisResultCreate):
    id: int

# ===== Report Schemas =====

class ReportAnomaly(BaseModel):
    type: str
    description: str
    severity: Severity

class ModelResult(BaseModel):
    modelId: int
    modelName: str
    modelDescription: str
    confidenceScore: int
    anomalies: List[ReportAnomaly]
    detailsData: ModelDetails

class FileInfo(BaseModel):
    filename: str
    filesize: int
    filetype: str
    duration: Optional[str] = None
    resolution: Optional[str] = None

class ReportMetadata(BaseModel):
    fileInfo: FileInfo
    technicalAnalysis: TechnicalFindings

class AnalysisResponse(BaseModel):
    mediaId: int
    filename: str
    filetype: str
    status: JobStatus
    overallConfidence: int
    isDeepfake: bool
    detectionTime: str
    manipulationTypes: List[ManipulationCandidate]
    modelResults: List[ModelResult]
    metadata: ReportMetadata

# ===== Request Schemas =====

class AnalyzeUrlRequest(BaseModel):
    url: str
    selectedModels: Optional[List[Union[int, str]]] = None

class HealthResponse(BaseModel):
    status: str
    service: str
