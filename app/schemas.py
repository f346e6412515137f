from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class BatchCreatedResponse(_CamelModel):
    job_id: str = Field(alias="jobId")


class BatchStatusResponse(_CamelModel):
    total: int
    done: int
    failed: int
    percent: int
    status: str
    zip_url: Optional[str] = Field(default=None, alias="zipUrl")


class StopResponse(_CamelModel):
    total: int
    done: int
    failed: int
    percent: int
    status: str
    message: str


class ErrorResponse(BaseModel):
    error: str
    details: Optional[List[Dict[str, Any]]] = None


class GenerateRequest(_CamelModel):
    prompt: str = Field(min_length=1)
    model_key: Optional[str] = Field(default=None, alias="modelKey")
    aspect_ratio: Optional[str] = Field(default=None, alias="aspectRatio")
    seed: Optional[int] = None


class JobCreatedResponse(_CamelModel):
    job_id: str = Field(alias="jobId")
