from typing import Optional

from fastapi import Request
from sqlalchemy.orm import Session

from cotacao.db import models


def audit_log(
    db: Session,
    request: Request,
    user: Optional[models.User],
    action: str,
    resource_type: str,
    resource_id: str,
    payload: dict | None = None,
) -> None:
    log = models.AuditLog(
        user_id=user.id if user else None,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        payload_resumo=payload or {},
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    db.add(log)
    db.commit()
