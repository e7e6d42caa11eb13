from app.tenants.models import Tenant  # noqa: F401
from app.auth.models import AuthUser, Profile, UserRole  # noqa: F401
from app.dashboards.models import Dashboard, Widget  # noqa: F401
from app.upstream.models import RmsConnection, ZabbixConnection  # noqa: F401
from app.flowmap.models import (  # noqa: F401
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
from app.alerts.models import (  # noqa: F401
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
from app.audit.models import AuditLog, FlowAuditLog  # noqa: F401
from app.telemetry.models import TelemetryConfig, TelemetryHeartbeat, WebhookToken  # noqa: F401
from app.printers.models import BillingLog, PrinterConfig  # noqa: F401
