from fastapi import Request
from .config import Settings
from .service import DetectionService

def get_service(request: Request) -> DetectionService:
    return request.app.state.service

def get_settings(request: Request) -> Settings:
    return request.app.state.settings
