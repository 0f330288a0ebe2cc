# meter_dashboard/schemas.py
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List, Union
from datetime import datetime


class Detections(BaseModel):
    """Detection results grouped by type; each entry is an opaque record."""
    OCR: List[Any] = Field(default_factory=list)
    faces: List[Any] = Field(default_factory=list)
    tv_channel: List[Any] = Field(default_factory=list)
    object_detection: List[Any] = Field(default_factory=list)
    content_detection: List[Any] = Field(default_factory=list)


class ImageEventOut(BaseModel):
    device_id: Optional[str] = None
    timestamp: Optional[int] = None
    timestamp_iso: Optional[str] = None
    status: Optional[str] = None
    detections: Detections = Field(default_factory=Detections)
    processed_s3_key: Optional[str] = None


class ImageEventPage(BaseModel):
    items: List[ImageEventOut]
    total: int
    page: int
    limit: int
    offset: int
    total_pages: int


class AudioEventOut(BaseModel):
    id: Optional[Union[int, str]] = None
    device_id: Optional[str] = None
    ts_raw: Any = None
    ts_iso: Optional[str] = None
    type: Optional[int] = None
    details: Optional[Dict[str, Any]] = None


class AudioEventPage(BaseModel):
    items: List[AudioEventOut]
    total: Optional[int] = None


class AudioItemOut(BaseModel):
    id: str
    meter_id: Optional[str] = None
    fp_file: Optional[str] = None
    channel: Optional[str] = None
    hit_score: Optional[float] = None
    recorder_id: Optional[str] = None
    source_type: Optional[str] = None
    timestamp_meter_raw: Any = None
    timestamp_meter_iso: Optional[str] = None
    timestamp_recorder_raw: Any = None
    timestamp_recorder_iso: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)


class AudioScanPage(BaseModel):
    items: List[AudioItemOut]
    nextStart: Optional[str] = None


class AudioScanAll(BaseModel):
    items: List[AudioItemOut]
    count: int
    pagesFetched: int
    truncated: bool = False
    note: Optional[str] = None


class UserOut(BaseModel):
    id: Union[int, str]
    email: str
    name: Optional[str] = None
    created_at: Optional[datetime] = None
