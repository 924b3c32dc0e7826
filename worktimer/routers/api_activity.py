from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..core.entity_kinds import EntityKind
from ..crud.activity import list_activity
from ..db.session import get_db
from ..deps.auth import require_api_access
from ..schemas.activity import ActivityOut

router = APIRouter(prefix="/api/v1/activity", tags=["activity"])


@router.get("", response_model=list[ActivityOut], dependencies=[Depends(require_api_access)])
def api_list(
    entity_type: EntityKind | None = Query(default=None),
    entity_id: int | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
):
    return list_activity(db, entity_type=entity_type, entity_id=entity_id, limit=limit, offset=offset)
