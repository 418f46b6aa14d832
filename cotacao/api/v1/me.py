from fastapi import APIRouter, Depends

from cotacao.core.security import AuthContext, get_auth_context, get_current_user
from cotacao.db import models

router = APIRouter(tags=["Usuario"])


@router.get("/me")
def get_me(
    current_user: models.User = Depends(get_current_user),
    context: AuthContext = Depends(get_auth_context),
):
    return {
        "user": {
            "id": current_user.id,
            "name": current_user.name,
            "email": current_user.email,
            "status": current_user.status,
        },
        "role": context.role,
    }
