from sqlalchemy.orm import declarative_base
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, JSON, String, UniqueConstraint
Base = declarative_base()

class MediaJob(Base):
    __tablename__ = "media_jobs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    filename = Column(String, nullable=False)
    filesize = Column(Integer, nullable=False)
    filetype = Column(String, nullable=False)
    user_id = Column(Integer, nullable=True, index=True)
    status = Column(String, nullable=False, default="pending", index=True)
    uploaded_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

class DetectionModelRow(Base):
    __tablename__ = "detection_models"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    description = Column(String, nullable=False, default="")
    media_compat = Column(String, nullable=False)
    category = Column(String, nullable=False, default="generic")
    is_active = Column(Boolean, nullable=False, default=True)

class AnalysisResultRow(Base):
    __tablename__ = "analysis_results"
    __table_args__ = (UniqueConstraint("job_id", "model_id", name="uq_analysis_results_job_model"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(Integer, ForeignKey("media_jobs.id"), nullable=False, index=True)
    model_id = Column(Integer, nullable=False)
    confidence_score = Column(Integer, nullable=False)
    anomalies = Column(JSON, nullable=False)
    manipulation_candidates = Column(JSON, nullable=False)
    model_details = Column(JSON, nullable=False)
    metadata_findings = Column(JSON, nullable=False)
    technical_findings = Column(JSON, nullable=False)
    analyzed_at = Column(DateTime, nullable=False)
