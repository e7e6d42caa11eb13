from dataclasses import dataclass, field

from sqlalchemy import Column, Table, select
from sqlalchemy.sql.elements import ColumnElement

from app.alerts.models import (
    AlertEvent,
    AlertInstance,
    AlertNotification,
    AlertRule,
    EscalationPolicy,
    EscalationStep,
    MaintenanceScope,
    MaintenanceWindow,
    NotificationChannel,
    SlaPolicy,
)
from app.audit.models import AuditLog, FlowAuditLog
from app.auth.models import Profile, UserRole
from app.core.errors import RelationNotFound
from app.dashboards.models import Dashboard, Widget
from app.flowmap.models import (
    FlowMap,
    FlowMapCable,
    FlowMapCto,
    FlowMapEffectiveCache,
    FlowMapHost,
    FlowMapLink,
    FlowMapLinkEvent,
    FlowMapLinkItem,
    FlowMapReserva,
)
from app.printers.models import BillingLog, PrinterConfig
from app.telemetry.models import TelemetryConfig, TelemetryHeartbeat, WebhookToken
from app.tenants.models import Tenant
from app.upstream.models import RMS_SECRET_COLUMNS, SECRET_COLUMNS, RmsConnection, ZabbixConnection

# How a relation is tied to the caller's tenant.
SCOPE_COLUMN = "column"  # own tenant_id column
SCOPE_SELF = "self"  # the tenants relation: its id is the tenant
SCOPE_PARENT = "parent"  # no tenant column; scoped through a parent relation

ADMIN_ONLY = ("admin",)
APPEND_ONLY = {"insertable": False, "updatable": False, "deletable": False}


@dataclass(frozen=True)
class Relation:
    name: str
    table: Table
    scope: str = SCOPE_COLUMN
    # parent scoping: (local fk column, parent table)
    parent: tuple[str, Table] | None = None
    hidden: frozenset[str] = field(default_factory=frozenset)
    read_roles: tuple[str, ...] | None = None
    write_roles: tuple[str, ...] | None = None
    insertable: bool = True
    updatable: bool = True
    deletable: bool = True
    # rows back a cached upstream session that must be dropped when they change
    holds_upstream_session: bool = False

    def column(self, name: str) -> Column | None:
        if name in self.hidden:
            return None
        return self.table.c.get(name)

    @property
    def visible_columns(self) -> list[Column]:
        return [c for c in self.table.c if c.name not in self.hidden]

    @property
    def stamps_tenant(self) -> bool:
        return self.scope == SCOPE_COLUMN

    @property
    def stamps_creator(self) -> bool:
        return "created_by" in self.table.c

    def default_order(self) -> list[ColumnElement]:
        if "created_at" in self.table.c:
            return [self.table.c.created_at.desc()]
        return [c.desc() for c in self.table.primary_key.columns]

    def tenant_predicate(self, tenant_id: str) -> ColumnElement:
        if self.scope == SCOPE_SELF:
            return self.table.c.id == tenant_id
        if self.scope == SCOPE_PARENT:
            fk_name, parent_table = self.parent
            owned = select(parent_table.c.id).where(parent_table.c.tenant_id == tenant_id)
            return self.table.c[fk_name].in_(owned)
        return self.table.c.tenant_id == tenant_id


def _rel(model, **kwargs) -> Relation:
    return Relation(name=model.__tablename__, table=model.__table__, **kwargs)


RELATIONS: dict[str, Relation] = {
    r.name: r
    for r in (
        _rel(Tenant, scope=SCOPE_SELF, write_roles=ADMIN_ONLY, insertable=False, deletable=False),
        _rel(Profile, write_roles=ADMIN_ONLY, insertable=False),
        _rel(UserRole, write_roles=ADMIN_ONLY),
        _rel(Dashboard),
        _rel(Widget, scope=SCOPE_PARENT, parent=("dashboard_id", Dashboard.__table__)),
        _rel(
            ZabbixConnection,
            hidden=frozenset(SECRET_COLUMNS),
            write_roles=ADMIN_ONLY,
            insertable=False,
            holds_upstream_session=True,
        ),
        _rel(FlowMap),
        _rel(FlowMapHost),
        _rel(FlowMapLink),
        _rel(FlowMapCto),
        _rel(FlowMapEffectiveCache),
        _rel(FlowMapLinkItem),
        _rel(FlowMapLinkEvent),
        _rel(FlowMapCable),
        _rel(FlowMapReserva),
        _rel(AlertRule),
        _rel(AlertInstance),
        _rel(AlertEvent, **APPEND_ONLY),
        _rel(AlertNotification, **APPEND_ONLY),
        _rel(NotificationChannel, write_roles=ADMIN_ONLY),
        _rel(EscalationPolicy, write_roles=ADMIN_ONLY),
        _rel(EscalationStep, write_roles=ADMIN_ONLY),
        _rel(MaintenanceWindow),
        _rel(MaintenanceScope),
        _rel(SlaPolicy),
        _rel(AuditLog, **APPEND_ONLY),
        _rel(FlowAuditLog, read_roles=ADMIN_ONLY, **APPEND_ONLY),
        _rel(WebhookToken, hidden=frozenset({"token_hash"}), write_roles=ADMIN_ONLY, insertable=False),
        _rel(TelemetryConfig, read_roles=ADMIN_ONLY, write_roles=ADMIN_ONLY),
        _rel(TelemetryHeartbeat),
        _rel(PrinterConfig),
        _rel(BillingLog, **APPEND_ONLY),
        _rel(RmsConnection, hidden=frozenset(RMS_SECRET_COLUMNS), write_roles=ADMIN_ONLY, insertable=False),
    )
}

# Relations without a tenant_id column of their own: never stamped on insert,
# filtered through their own id or their parent instead.
TENANT_EXEMPT = frozenset(name for name, r in RELATIONS.items() if not r.stamps_tenant)


def get_relation(name: str) -> Relation:
    relation = RELATIONS.get(name)
    if not relation:
        raise RelationNotFound(f'relation "{name}" not found')
    return relation
