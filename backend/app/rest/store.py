import logging
from typing import Any, Iterable

from sqlalchemy import delete, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.auth.deps import Principal
from app.core.errors import Conflict, Forbidden, ValidationFailed
from app.db.upsert import upsert_insert
from app.rest.filters import coerce_value, translate
from app.rest.relations import Relation

logger = logging.getLogger(__name__)

# identity relations never get a creator stamp
NO_CREATOR_STAMP = {"profiles", "user_roles"}


def _check_writable(relation: Relation, principal: Principal, verb: str) -> None:
    allowed = {
        "insert": relation.insertable,
        "update": relation.updatable,
        "delete": relation.deletable,
    }[verb]
    if not allowed:
        raise Forbidden(f'{verb} is not allowed on "{relation.name}"')
    if relation.write_roles and principal.role not in relation.write_roles:
        raise Forbidden("Insufficient permissions")


def _clean_values(relation: Relation, data: Any) -> dict:
    if not isinstance(data, dict):
        raise ValidationFailed("Row payload must be a JSON object")
    values = {}
    for key, raw in data.items():
        col = relation.column(key)
        if col is None:
            raise ValidationFailed(f'column "{key}" does not exist on "{relation.name}"')
        values[key] = coerce_value(col, raw)
    return values


def _ensure_owned_dashboard(db: Session, relation: Relation, values: dict, tenant_id: str) -> None:
    if relation.parent is None:
        return
    fk_name, parent_table = relation.parent
    if fk_name not in values:
        return
    owner = db.execute(
        select(parent_table.c.tenant_id).where(parent_table.c.id == values[fk_name])
    ).scalar_one_or_none()
    if owner != tenant_id:
        raise Forbidden(f"{fk_name} does not belong to your tenant")


def _stamp(relation: Relation, values: dict, principal: Principal) -> dict:
    if relation.stamps_tenant:
        values["tenant_id"] = principal.tenant_id
    if relation.stamps_creator and relation.name not in NO_CREATOR_STAMP:
        values.setdefault("created_by", principal.user_id)
    return values


def _upsert_statement(db: Session, relation: Relation, values: dict, conflict_cols: list[str], merge: bool):
    stmt = upsert_insert(db, relation.table).values(**values)
    updates = {k: stmt.excluded[k] for k in values if k not in conflict_cols and k != "id"}
    if not merge or not updates:
        return stmt.on_conflict_do_nothing(index_elements=conflict_cols)
    kwargs = {"index_elements": conflict_cols, "set_": updates}
    if relation.stamps_tenant:
        # never take over another tenant's row through a shared conflict key
        kwargs["where"] = relation.table.c.tenant_id == values["tenant_id"]
    return stmt.on_conflict_do_update(**kwargs)


def _execute_write(db: Session, relation: Relation, statements: Iterable, returning: bool) -> list[dict]:
    rows: list[dict] = []
    try:
        for stmt in statements:
            if returning:
                result = db.execute(stmt.returning(*relation.visible_columns))
                rows.extend(dict(r) for r in result.mappings().all())
            else:
                db.execute(stmt)
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.warning("Integrity error writing %s: %s", relation.name, e.orig)
        raise Conflict("Row conflicts with existing data or references a missing row")
    except Exception:
        db.rollback()
        raise
    return rows


def list_rows(db: Session, relation: Relation, params: list[tuple[str, str]], principal: Principal) -> list[dict]:
    if relation.read_roles and principal.role not in relation.read_roles:
        raise Forbidden("Insufficient permissions")
    query = translate(relation, params, principal.tenant_id)
    stmt = (
        select(*query.columns)
        .where(*query.predicates)
        .order_by(*query.order_by)
        .limit(query.limit)
        .offset(query.offset)
    )
    return [dict(r) for r in db.execute(stmt).mappings().all()]


def insert_rows(
    db: Session,
    relation: Relation,
    body: Any,
    principal: Principal,
    *,
    returning: bool = False,
    on_conflict: str | None = None,
    resolution: str | None = None,
) -> list[dict]:
    """Insert one or many rows, optionally as an upsert on ``on_conflict``.

    ``resolution`` follows the Prefer header: ``merge-duplicates`` updates
    the other submitted columns on conflict, ``ignore-duplicates`` keeps the
    existing row.
    """
    _check_writable(relation, principal, "insert")
    items = body if isinstance(body, list) else [body]
    if not items:
        raise ValidationFailed("Empty insert payload")

    conflict_cols: list[str] = []
    if resolution:
        for name in (on_conflict or "id").split(","):
            if relation.column(name.strip()) is None:
                raise ValidationFailed(f'on_conflict column "{name.strip()}" does not exist on "{relation.name}"')
            conflict_cols.append(name.strip())

    statements = []
    for item in items:
        values = _stamp(relation, _clean_values(relation, item), principal)
        _ensure_owned_dashboard(db, relation, values, principal.tenant_id)
        if conflict_cols:
            merge = resolution == "merge-duplicates"
            statements.append(_upsert_statement(db, relation, values, conflict_cols, merge))
        else:
            statements.append(insert(relation.table).values(**values))

    return _execute_write(db, relation, statements, returning)


def update_rows(
    db: Session,
    relation: Relation,
    params: list[tuple[str, str]],
    data: Any,
    principal: Principal,
    *,
    returning: bool = False,
) -> list[dict]:
    _check_writable(relation, principal, "update")
    query = translate(relation, params, principal.tenant_id)
    if not query.has_filters:
        raise ValidationFailed("Update requires at least one filter")

    values = _clean_values(relation, data)
    if not values:
        raise ValidationFailed("Nothing to update")
    if "tenant_id" in values:
        raise ValidationFailed("tenant_id cannot be changed")
    _ensure_owned_dashboard(db, relation, values, principal.tenant_id)

    stmt = update(relation.table).where(*query.predicates).values(**values)
    return _execute_write(db, relation, [stmt], returning)


def delete_rows(
    db: Session,
    relation: Relation,
    params: list[tuple[str, str]],
    principal: Principal,
    *,
    returning: bool = False,
) -> list[dict]:
    _check_writable(relation, principal, "delete")
    query = translate(relation, params, principal.tenant_id)
    if not query.has_filters:
        raise ValidationFailed("Delete requires at least one filter")

    stmt = delete(relation.table).where(*query.predicates)
    return _execute_write(db, relation, [stmt], returning)
