from __future__ import annotations

import json
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger("audit")


@dataclass
class AuditEvent:
    """Structured representation of an audit event.

    Keeps the payload free of patient data: ids, types and high-level actions
    only, never names, CPF or message content.
    """

    timestamp: str
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    subject: Optional[str] = None
    workspace_id: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


class AuditService:
    def log_event(
        self,
        *,
        action: str,
        resource_type: str,
        resource_id: Optional[str] = None,
        subject: Optional[str] = None,
        workspace_id: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log a structured audit event.

        - `action`: high-level verb, e.g., "create", "update", "delete".
        - `resource_type`: coarse type, e.g., "patient", "workspace_member".
        - `resource_id`: stable identifier (UUID string) when available.
        - `subject`: identifier of the caller. If omitted, it is taken from
          the authenticated principal of the current request.
        - `extra`: optional small dict of non-PHI metadata (roles, flags).
        """

        if subject is None:
            from src.clinic_api.security import get_current_subject

            subject = get_current_subject()

        event = AuditEvent(
            timestamp=datetime.now(timezone.utc).isoformat(),
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            subject=subject,
            workspace_id=workspace_id,
            extra=extra,
        )

        try:
            logger.info(json.dumps(asdict(event)))
        except TypeError:
            # Log a simpler representation if something in extra is not JSON
            # serializable.
            safe_event = asdict(event)
            safe_event["extra"] = None
            logger.info(json.dumps(safe_event))


audit_service = AuditService()
