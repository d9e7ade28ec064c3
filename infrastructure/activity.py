"""Activity sinks"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
import logging

from domain.ports import ActivitySink

logger = logging.getLogger(__name__)


@dataclass
class ActivityRecord:
    actor: str
    action: str
    entity_type: str
    entity_id: str
    message: str
    recorded_at: datetime = field(default_factory=datetime.utcnow)


class LoggingActivitySink(ActivitySink):
    """Writes every activity to the application log"""

    async def record(self, actor: str, action: str, entity_type: str, entity_id: str, message: str) -> None:
        logger.info(f"[{actor}] {action} {entity_type} {entity_id}: {message}")


class InMemoryActivitySink(ActivitySink):
    """Keeps activities in memory, newest last"""

    def __init__(self):
        self.records: List[ActivityRecord] = []

    async def record(self, actor: str, action: str, entity_type: str, entity_id: str, message: str) -> None:
        self.records.append(ActivityRecord(
            actor=actor,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            message=message
        ))

    def find(self, action: Optional[str] = None, entity_id: Optional[str] = None) -> List[ActivityRecord]:
        results = self.records
        if action:
            results = [r for r in results if r.action == action]
        if entity_id:
            results = [r for r in results if r.entity_id == entity_id]
        return list(results)
