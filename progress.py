"""Progress events emitted while a job run parses sources and downloads pages."""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class ProgressEvent:
    """
    One step of a running ingestion.

    stage: ``source`` (trying a source), ``chapter`` (importing a chapter)
    or ``page`` (downloading a page).
    status: ``started``, ``progress``, ``completed``, ``skipped`` or ``error``.
    """
    stage: str
    status: str
    message: str
    current: Optional[int] = None
    total: Optional[int] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def percentage(self) -> Optional[int]:
        if not self.total or self.current is None:
            return None
        return round(self.current * 100 / self.total)


ProgressCallback = Callable[[ProgressEvent], None]


def emit(progress: Optional[ProgressCallback], event: ProgressEvent) -> None:
    """Deliver an event to an optional listener; listener errors never abort ingestion."""
    if progress is None:
        return
    try:
        progress(event)
    except Exception as e:
        logger.warning(f"Progress listener failed on {event.stage}/{event.status}: {e}")
