"""In-process audit trail.

Only access denials are recorded today. The most recent
``Settings.audit_max_entries`` entries are kept in memory; older ones are
dropped but every entry is also written to the ``salescrm.audit`` logger.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from salescrm.core.config import get_settings
from salescrm.core.context import get_correlation_id


logger = logging.getLogger("salescrm.audit")


@dataclass(frozen=True)
class AuditEntry:
    actor_id: str | None
    action: str
    resource: str
    details: dict[str, Any] | None = None
    correlation_id: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


audit_entries: deque[AuditEntry] = deque(maxlen=get_settings().audit_max_entries)


def _trail() -> deque[AuditEntry]:
    global audit_entries
    limit = max(1, get_settings().audit_max_entries)
    if audit_entries.maxlen != limit:
        audit_entries = deque(audit_entries, maxlen=limit)
    return audit_entries


def record(
    actor_id: str | None,
    action: str,
    *,
    resource: str,
    details: dict[str, Any] | None = None,
) -> AuditEntry:
    entry = AuditEntry(
        actor_id=actor_id,
        action=action,
        resource=resource,
        details=details,
        correlation_id=get_correlation_id(),
    )
    _trail().append(entry)
    logger.info("audit.%s", action, extra={"actor_id": actor_id, "path": resource})
    return entry
