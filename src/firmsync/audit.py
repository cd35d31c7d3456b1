"""
Audit logging for background integration work.

Every event is written to the ``firmsync.audit`` logger. When an engine is
supplied, events are also persisted as AuditEvent rows so firm admins can
review integration failures later.

Audit logging is fire-and-forget: a failure to persist an event is logged
and never propagated to the caller.
"""
import json
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from firmsync.models.audit import AuditEvent

logger = logging.getLogger("firmsync.audit")


class AuditLogger:
    def __init__(self, engine=None):
        """
        Args:
            engine: Optional SQLAlchemy engine. If None, events are only logged.
        """
        self.engine = engine

    def log_error(self, context: str, details: Dict[str, Any]) -> None:
        logger.error("[AUDIT][%s] %s", context, details)
        self._persist("error", context, details)

    def log_warning(self, context: str, details: Dict[str, Any]) -> None:
        logger.warning("[AUDIT][%s] %s", context, details)
        self._persist("warning", context, details)

    def _persist(self, level: str, context: str, details: Dict[str, Any]) -> None:
        if self.engine is None:
            return
        event = AuditEvent(
            level=level,
            context=context,
            tenant_id=_optional_str(details.get("tenant_id")),
            provider=_optional_str(details.get("provider")),
            details_json=json.dumps(details, default=str),
        )
        try:
            with Session(self.engine) as s:
                s.add(event)
                s.commit()
        except SQLAlchemyError:
            logger.exception("Failed to persist audit event for %s", context)


def _optional_str(value: Optional[Any]) -> Optional[str]:
    return None if value is None else str(value)
