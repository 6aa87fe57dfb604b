"""Pydantic models for BuildFish AI Text-to-3D API."""

from pydantic import BaseModel, Field
from typing import Any, Optional, Literal


class GenerateRequest(BaseModel):
    prompt: Optional[str] = Field(None, description="Text description of the 3D model")


class GenerationInfo(BaseModel):
    prompt: str
    timestamp: str
    status: str = "success"


class GenerateResponse(BaseModel):
    objects: list[Any]
    metadata: dict
    rawResponse: str
    generation: GenerationInfo


class ExportRequest(BaseModel):
    objects: list[Any] = Field(..., description="CAD objects to export")
    format: Literal["stl", "obj", "glb"] = "stl"
    title: Optional[str] = None


class SceneRequest(BaseModel):
    objects: list[Any] = Field(..., description="CAD objects to lay out")


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = ""
    model: str = ""
    api_key_configured: bool = False
