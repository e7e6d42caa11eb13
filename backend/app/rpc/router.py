from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from app.auth.deps import Principal, get_principal
from app.core.errors import ValidationFailed
from app.db.session import get_db
from app.rpc.handlers import dispatch, resolve_rpc

router = APIRouter()


@router.post("/{name}")
def call_rpc(
    name: str,
    args: Any = Body(default=None),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    rpc = resolve_rpc(name)
    if args is None:
        args = {}
    if not isinstance(args, dict):
        raise ValidationFailed("RPC arguments must be a JSON object")
    return dispatch(rpc, db, principal, args)
