"""
Default rows written into a freshly initialized tenant schema.

A SeedData instance describes the rows; the provisioning service inserts them
inside the same transaction that creates the tables.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from sqlalchemy.engine import Connection

from ..constants import AuditAction, SettingCategory, SettingType
from ..db.db_base import utc_now
from ..db.db_tenant_tables import audit_logs, dashboards, tenant_settings

WELCOME_DASHBOARD: Dict[str, Any] = {
    "name": "Welcome Dashboard",
    "description": "Default dashboard for getting started",
    "type": "OVERVIEW",
    "layout": {"type": "grid", "columns": 2, "rows": 2},
    "is_public": False,
}

DEFAULT_SETTINGS: List[Dict[str, Any]] = [
    {
        "key": "date_format",
        "value": "YYYY-MM-DD",
        "type": SettingType.STRING.value,
        "category": SettingCategory.DISPLAY.value,
        "description": "Default date format",
    },
    {
        "key": "time_zone",
        "value": "UTC",
        "type": SettingType.STRING.value,
        "category": SettingCategory.DISPLAY.value,
        "description": "Default timezone",
    },
    {
        "key": "language",
        "value": "en",
        "type": SettingType.STRING.value,
        "category": SettingCategory.DISPLAY.value,
        "description": "Default language",
    },
    {
        "key": "enable_notifications",
        "value": "true",
        "type": SettingType.BOOLEAN.value,
        "category": SettingCategory.FEATURES.value,
        "description": "Enable email notifications",
    },
    {
        "key": "data_retention_days",
        "value": "365",
        "type": SettingType.NUMBER.value,
        "category": SettingCategory.DATA.value,
        "description": "Days to retain data",
    },
]


@dataclass
class SeedData:
    dashboards: List[Dict[str, Any]] = field(default_factory=lambda: [dict(WELCOME_DASHBOARD)])
    settings: List[Dict[str, Any]] = field(default_factory=lambda: [dict(s) for s in DEFAULT_SETTINGS])

    def audit_entry(self, schema_name: str, tenant_id: str) -> Dict[str, Any]:
        return {
            "action": AuditAction.TENANT_PROVISIONED.value,
            "entity_type": "TENANT",
            "entity_id": str(tenant_id),
            "metadata": {"schema": schema_name, "provisioned_at": utc_now().isoformat()},
        }

    def insert(self, conn: Connection, schema_name: str, tenant_id: str) -> None:
        """Insert the seed rows. ``conn`` must already be scoped to the tenant schema."""
        if self.dashboards:
            conn.execute(dashboards.insert(), self.dashboards)
        conn.execute(audit_logs.insert(), [self.audit_entry(schema_name, tenant_id)])
        if self.settings:
            conn.execute(tenant_settings.insert(), self.settings)


DEFAULT_SEED_DATA = SeedData()
