from collections import Counter
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gestao_acoes.core.authorization import Capabilities, get_capabilities
from gestao_acoes.core.security import get_current_user
from gestao_acoes.db import models
from gestao_acoes.db.session import get_db
from gestao_acoes.services import actions as action_service
from gestao_acoes.services import lifecycle

router = APIRouter(tags=["Dashboard"])


@router.get("/dashboard/summary")
def dashboard_summary(
    company_id: Optional[str] = None,
    current_user: models.User = Depends(get_current_user),
    capabilities: Capabilities = Depends(get_capabilities),
    db: Session = Depends(get_db),
):
    """Resumo das acoes visiveis ao usuario.

    Sem ``can_view_reports`` o resumo considera apenas as acoes atribuidas
    ao proprio usuario.
    """
    if not capabilities.can_view_reports:
        capabilities = Capabilities(view_only_assigned_actions=True)
    items = action_service.list_actions(db, current_user, capabilities, company_id=company_id)
    summary = action_service.get_summary(items)
    by_responsible = Counter(action.responsible_id for action in items)
    overdue = [action for action in items if action.status == lifecycle.ATRASADO]
    return {
        "summary": summary.model_dump(),
        "by_status": {
            status: len(column) for status, column in action_service.group_by_status(items).items()
        },
        "by_responsible": dict(by_responsible),
        "overdue": [
            {"id": action.id, "subject": action.subject, "end_date": action.end_date}
            for action in overdue[:10]
        ],
    }
