"""
Seed the detection model catalog
"""
import asyncio
from typing import List
from .config import settings
from .logger import logger
from .schemas import DetectionModel, DetectionModelCreate, MediaCompat, ModelCategory
from .store.base import JobStore

DEFAULT_MODELS: List[DetectionModelCreate] = [
    DetectionModelCreate(
        name="FaceForensics++",
        description="Specialized in facial manipulation detection",
        mediaCompat=MediaCompat.BOTH,
        category=ModelCategory.FACE_FORENSICS,
        isActive=True,
    ),
    DetectionModelCreate(
        name="DeepFake Detection Challenge",
        description="Facebook's DFDC model for video analysis",
        mediaCompat=MediaCompat.VIDEO,
        category=ModelCategory.GENERIC,
        isActive=True,
    ),
    DetectionModelCreate(
        name="CNN-LSTM",
        description="Temporal inconsistency detection",
        mediaCompat=MediaCompat.VIDEO,
        category=ModelCategory.TEMPORAL,
        isActive=True,
    ),
    DetectionModelCreate(
        name="EfficientNet-B4",
        description="High-accuracy image classification",
        mediaCompat=MediaCompat.IMAGE,
        category=ModelCategory.IMAGE_CLASSIFIER,
        isActive=True,
    ),
]

async def seed_default_models(store: JobStore) -> List[DetectionModel]:
    """Seed the default catalog unless the store already has models"""
    existing = await store.list_models()
    if existing:
        logger.info(f"Model catalog already seeded with {len(existing)} models")
        return existing

    created = [await store.create_model(model) for model in DEFAULT_MODELS]
    logger.info(
        f"Seeded {len(created)} detection models",
        extra={"model_ids": [m.id for m in created]},
    )
    return created

async def main():
    """Main seed function"""
    from .store.sql import SqlJobStore

    logger.info("Seeding detection model catalog")
    store = SqlJobStore.from_url(settings.DATABASE_URL)
    try:
        await store.init_schema()
        await seed_default_models(store)
    finally:
        await store.close()

if __name__ == "__main__":
    asyncio.run(main())
