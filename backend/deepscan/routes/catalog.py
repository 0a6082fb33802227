"""
Catalog routes - detection models
"""
from fastapi import APIRouter, Depends
from typing import List

from ..dependencies import get_service
from ..schemas import DetectionModel, DetectionModelCreate
from ..service import DetectionService

router = APIRouter(prefix="/api", tags=["Catalog"])


@router.get("/models", response_model=List[DetectionModel])
async def list_models(service: DetectionService = Depends(get_service)):
    """List the detection model catalog"""
    return await service.list_models()


@router.post("/models", response_model=DetectionModel, status_code=201)
async def create_model(data: DetectionModelCreate, service: DetectionService = Depends(get_service)):
    """Register a new detection model"""
    return await service.create_model(data)
