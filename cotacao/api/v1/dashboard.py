from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from cotacao.core.security import ROLE_GESTOR, require_role
from cotacao.db import models
from cotacao.db.session import get_db
from cotacao.services.op_views import dashboard

router = APIRouter(prefix="/gestor", tags=["Dashboard"])


@router.get("/dashboard")
def dashboard_summary(
    current_user: models.User = Depends(require_role(ROLE_GESTOR)),
    db: Session = Depends(get_db),
):
    return dashboard(db)
