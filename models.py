"""Database models for manga chapter ingestion."""
from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Enum,
    ForeignKey, Index, Boolean, JSON
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base
import enum


class ParsingFrequency(str, enum.Enum):
    """How often an ingestion job looks for new chapters."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Work(Base):
    """Cataloged work (a manga/manhwa title) that owns chapters."""
    __tablename__ = 'works'

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(500), nullable=False, index=True)
    alternative_titles = Column(JSON, nullable=False, default=list)
    description = Column(Text, nullable=True)
    cover_url = Column(String(1000), nullable=True)
    genres = Column(JSON, nullable=False, default=list)
    type = Column(String(50), nullable=True)
    author = Column(String(500), nullable=True)
    artist = Column(String(500), nullable=True)
    release_year = Column(Integer, nullable=True)
    # Work page the metadata was imported from
    source_url = Column(String(1000), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    chapters = relationship("Chapter", back_populates="work", cascade="all, delete-orphan")
    ingestion_job = relationship("IngestionJob", back_populates="work", uselist=False)

    def __repr__(self):
        return f"<Work(id={self.id}, title='{self.title}')>"


class Chapter(Base):
    """Chapter of a work with its ordered local page paths."""
    __tablename__ = 'chapters'

    id = Column(Integer, primary_key=True, index=True)
    work_id = Column(Integer, ForeignKey('works.id', ondelete='CASCADE'), nullable=False, index=True)
    # Numeric-or-string identifier, stored in canonical text form ("12", "12.5", "extra")
    identifier = Column(String(50), nullable=False)
    name = Column(String(500), nullable=False)
    pages = Column(JSON, nullable=False, default=list)
    source_url = Column(String(1000), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    work = relationship("Work", back_populates="chapters")

    __table_args__ = (
        Index('ix_chapters_work_identifier', 'work_id', 'identifier', unique=True),
    )

    def __repr__(self):
        return f"<Chapter(id={self.id}, work_id={self.work_id}, identifier='{self.identifier}')>"


class IngestionJob(Base):
    """Recurring discovery of new chapters for one work."""
    __tablename__ = 'ingestion_jobs'

    id = Column(Integer, primary_key=True, index=True)
    work_id = Column(Integer, ForeignKey('works.id', ondelete='CASCADE'), nullable=False, unique=True)
    # Deprecated single locator, kept for jobs registered before `sources` existed
    url = Column(String(1000), nullable=True)
    sources = Column(JSON, nullable=False, default=list)
    frequency = Column(Enum(ParsingFrequency), default=ParsingFrequency.DAILY, nullable=False)
    enabled = Column(Boolean, default=True, nullable=False, index=True)
    schedule_hour = Column(Integer, nullable=True)
    last_checked = Column(DateTime(timezone=True), nullable=True)
    last_used_source_index = Column(Integer, nullable=True)
    last_used_source_url = Column(String(1000), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    work = relationship("Work", back_populates="ingestion_job")

    __table_args__ = (
        Index('ix_ingestion_jobs_due', 'frequency', 'schedule_hour', 'enabled'),
    )

    def source_list(self) -> list[str]:
        """Ordered source locators, falling back to the deprecated single url."""
        if self.sources:
            return list(self.sources)
        if self.url:
            return [self.url]
        return []

    def __repr__(self):
        return (
            f"<IngestionJob(id={self.id}, work_id={self.work_id}, "
            f"frequency='{self.frequency}', schedule_hour={self.schedule_hour})>"
        )
