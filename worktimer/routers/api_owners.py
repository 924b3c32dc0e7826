from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..crud.owners import create_owner, list_owners
from ..db.session import get_db
from ..deps.auth import require_api_access
from ..schemas.owner import OwnerCreate, OwnerOut

router = APIRouter(prefix="/api/v1/owners", tags=["owners"], dependencies=[Depends(require_api_access)])


@router.get("", response_model=list[OwnerOut])
def api_list(db: Session = Depends(get_db)):
    return list_owners(db)


@router.post("", response_model=OwnerOut, status_code=201)
def api_create(payload: OwnerCreate, db: Session = Depends(get_db)):
    try:
        return create_owner(db, payload.model_dump())
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
