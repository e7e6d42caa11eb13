import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.auth.deps import Principal, get_principal
from app.db.session import get_db
from app.rest import store
from app.rest.relations import get_relation
from app.upstream.service import UpstreamProxy, get_upstream_proxy

logger = logging.getLogger(__name__)

router = APIRouter()


def _prefer(request: Request) -> dict[str, str]:
    prefs = {}
    for part in request.headers.get("prefer", "").split(","):
        key, _, value = part.strip().partition("=")
        if key:
            prefs[key] = value
    return prefs


def _wants_rows(request: Request) -> bool:
    return _prefer(request).get("return") == "representation"


def _respond(rows: list[dict], wants_rows: bool, single: bool = False, status_code: int = 200) -> JSONResponse:
    if not wants_rows:
        content: Any = {}
    elif single:
        content = rows[0] if rows else None
    else:
        content = rows
    return JSONResponse(content=jsonable_encoder(content), status_code=status_code)


@router.get("/{relation_name}")
def list_relation(
    relation_name: str,
    request: Request,
    response: Response,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    relation = get_relation(relation_name)
    rows = store.list_rows(db, relation, list(request.query_params.multi_items()), principal)
    response.headers["Content-Range"] = f"0-{len(rows)}/*"
    return rows


@router.post("/{relation_name}")
def create_in_relation(
    relation_name: str,
    request: Request,
    body: Any = Body(...),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    relation = get_relation(relation_name)
    prefs = _prefer(request)
    rows = store.insert_rows(
        db,
        relation,
        body,
        principal,
        returning=_wants_rows(request),
        on_conflict=request.query_params.get("on_conflict"),
        resolution=prefs.get("resolution"),
    )
    return _respond(rows, _wants_rows(request), single=not isinstance(body, list), status_code=201)


def _drop_upstream_sessions(relation, rows: list[dict], proxy: UpstreamProxy) -> None:
    for row in rows:
        proxy.cache.invalidate(row["id"])
    if rows:
        logger.info("Dropped cached upstream sessions for %d %s rows", len(rows), relation.name)


@router.patch("/{relation_name}")
def update_relation(
    relation_name: str,
    request: Request,
    body: Any = Body(...),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
    proxy: UpstreamProxy = Depends(get_upstream_proxy),
):
    relation = get_relation(relation_name)
    wants_rows = _wants_rows(request)
    rows = store.update_rows(
        db,
        relation,
        list(request.query_params.multi_items()),
        body,
        principal,
        returning=wants_rows or relation.holds_upstream_session,
    )
    if relation.holds_upstream_session:
        _drop_upstream_sessions(relation, rows, proxy)
    return _respond(rows, wants_rows)


@router.delete("/{relation_name}")
def delete_from_relation(
    relation_name: str,
    request: Request,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
    proxy: UpstreamProxy = Depends(get_upstream_proxy),
):
    relation = get_relation(relation_name)
    wants_rows = _wants_rows(request)
    rows = store.delete_rows(
        db,
        relation,
        list(request.query_params.multi_items()),
        principal,
        returning=wants_rows or relation.holds_upstream_session,
    )
    if relation.holds_upstream_session:
        _drop_upstream_sessions(relation, rows, proxy)
    return _respond(rows, wants_rows)
