from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Literal, Optional


class CooldownRequest(BaseModel):
    cooldown_ms: int = Field(ge=0)


class CalibrationRequest(BaseModel):
    wet: Optional[int] = Field(default=None, ge=0)
    dry: Optional[int] = Field(default=None, ge=0)


class AlertSettingsRequest(BaseModel):
    enabled: bool
    low: int
    high: int


class SensorNameRequest(BaseModel):
    name: str = Field(min_length=1, max_length=64)


class BaseUrlRequest(BaseModel):
    url: str = ""


class SimMoistureRequest(BaseModel):
    moisture: int = Field(ge=0, le=100)


class SimPatternRequest(BaseModel):
    type: Literal["manual", "sine", "random"]
    baseline: float = Field(default=50.0, ge=0, le=100)
    amplitude: float = Field(default=20.0, ge=0)
    period_s: float = Field(default=600.0, gt=0)
    noise: float = Field(default=2.0, ge=0)
