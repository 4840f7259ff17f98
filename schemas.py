"""Pydantic schemas for API request/response validation."""
from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, List
from datetime import datetime
from models import ParsingFrequency


# Job Schemas
class JobCreate(BaseModel):
    """Register an ingestion job for a work."""
    work_id: int
    sources: List[str] = Field(default_factory=list, description="Work-page URLs, tried in order")
    url: Optional[str] = Field(None, description="Deprecated single source URL")
    frequency: ParsingFrequency = ParsingFrequency.DAILY
    enabled: bool = True
    schedule_hour: Optional[int] = Field(None, ge=0, le=23)

    @model_validator(mode='after')
    def require_source(self):
        if not self.sources and not self.url:
            raise ValueError("Either sources or url must be provided")
        return self


class JobUpdate(BaseModel):
    """Partial update of an ingestion job."""
    sources: Optional[List[str]] = None
    url: Optional[str] = None
    frequency: Optional[ParsingFrequency] = None
    enabled: Optional[bool] = None
    schedule_hour: Optional[int] = Field(None, ge=0, le=23)


class JobResponse(BaseModel):
    """Ingestion job as stored."""
    id: int
    work_id: int
    sources: List[str] = []
    url: Optional[str] = None
    frequency: ParsingFrequency
    enabled: bool
    schedule_hour: Optional[int] = None
    last_checked: Optional[datetime] = None
    last_used_source_index: Optional[int] = None
    last_used_source_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class JobListResponse(BaseModel):
    items: List[JobResponse]
    total: int


class ImportedChapterSchema(BaseModel):
    chapter_id: int
    identifier: str
    name: str
    page_count: int

    model_config = ConfigDict(from_attributes=True)


class CheckResponse(BaseModel):
    """Result of an immediate job run."""
    job_id: int
    skipped: bool = False
    imported: List[ImportedChapterSchema] = []
    used_source_index: Optional[int] = None
    used_source_url: Optional[str] = None
    errors: List[str] = []


class EnqueueResponse(BaseModel):
    job_id: int
    queue_job_id: str
    message: str


# Source Schemas
class SourceFamily(BaseModel):
    family: str
    hosts: List[str]


class SourceListResponse(BaseModel):
    items: List[SourceFamily]
    total: int


class PreviewRequest(BaseModel):
    """Parse a work page and list its chapters."""
    url: str
    chapters: List[str] = Field(default_factory=list, description='Selection such as ["1-5", "7"]')


class ChapterPreview(BaseModel):
    name: str
    number: Optional[float] = None
    locator: str


class PreviewResponse(BaseModel):
    title: str
    alternative_titles: List[str] = []
    description: Optional[str] = None
    cover_url: Optional[str] = None
    genres: List[str] = []
    author: Optional[str] = None
    artist: Optional[str] = None
    type: Optional[str] = None
    release_year: Optional[int] = None
    chapters: List[ChapterPreview] = []


class WorkImportRequest(BaseModel):
    """Create a work from a source page and import its chapters."""
    url: str
    chapters: List[str] = Field(default_factory=list, description='Selection such as ["1-5", "7"]; empty imports all')
    title: Optional[str] = None
    description: Optional[str] = None
    genres: Optional[List[str]] = None
    type: Optional[str] = None

    def overrides(self) -> dict:
        return {
            'title': self.title,
            'description': self.description,
            'genres': self.genres,
            'type': self.type,
        }


class WorkImportResponse(BaseModel):
    work_id: int
    title: str
    cover_url: Optional[str] = None
    imported: List[ImportedChapterSchema] = []
    total_chapters: int
