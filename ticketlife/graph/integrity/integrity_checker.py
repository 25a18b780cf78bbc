"""
Lifecycle Integrity Checker.

Validates the invariants the lifecycle service maintains:
- A uuid lives in exactly one store (active or trash)
- Tag attachments point at an existing row in the location they name
- Non-orphaned permission grants point at an existing row
- Rows carry their required properties
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import structlog

from ticketlife.graph.neo4j_client import TicketGraphClient, get_ticket_client
from ticketlife.graph.schema import TICKET, Location, NodeLabel, ResourceKind

logger = structlog.get_logger(__name__)


class IssueType(str, Enum):
    """Types of integrity issues."""

    DUPLICATE_UUID = "duplicate_uuid"         # Same uuid in both stores
    DANGLING_TAG = "dangling_tag"             # Tag attachment to a missing row
    DANGLING_PERMISSION = "dangling_permission"  # Live grant on a missing row
    MISSING_REQUIRED = "missing_required"     # Missing required property


class IssueSeverity(str, Enum):
    """Severity levels for issues."""

    ERROR = "error"       # Must be fixed
    WARNING = "warning"   # Should be investigated
    INFO = "info"         # For information only


@dataclass
class IntegrityIssue:
    """Represents an integrity issue found in the graph."""

    issue_type: IssueType
    severity: IssueSeverity
    description: str
    resource_id: int | None = None
    resource_uuid: str | None = None
    node_label: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "issue_type": self.issue_type.value,
            "severity": self.severity.value,
            "description": self.description,
            "resource_id": self.resource_id,
            "resource_uuid": self.resource_uuid,
            "node_label": self.node_label,
            "details": self.details,
        }


@dataclass
class IntegrityReport:
    """Report of integrity check results."""

    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    is_healthy: bool = True

    # Counts
    active_rows: int = 0
    trash_rows: int = 0
    issues_found: int = 0

    # Issues by severity
    errors: list[IntegrityIssue] = field(default_factory=list)
    warnings: list[IntegrityIssue] = field(default_factory=list)
    info: list[IntegrityIssue] = field(default_factory=list)

    # Statistics
    duplicate_uuids: int = 0
    dangling_tags: int = 0
    dangling_permissions: int = 0

    duration_seconds: float = 0.0

    def add_issue(self, issue: IntegrityIssue) -> None:
        """Add an issue to the report."""
        if issue.severity == IssueSeverity.ERROR:
            self.errors.append(issue)
            self.is_healthy = False
        elif issue.severity == IssueSeverity.WARNING:
            self.warnings.append(issue)
        else:
            self.info.append(issue)

        self.issues_found += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked_at": self.checked_at.isoformat(),
            "is_healthy": self.is_healthy,
            "summary": {
                "active_rows": self.active_rows,
                "trash_rows": self.trash_rows,
                "issues_found": self.issues_found,
                "errors": len(self.errors),
                "warnings": len(self.warnings),
                "info": len(self.info),
            },
            "statistics": {
                "duplicate_uuids": self.duplicate_uuids,
                "dangling_tags": self.dangling_tags,
                "dangling_permissions": self.dangling_permissions,
            },
            "duration_seconds": round(self.duration_seconds, 2),
            "issues": {
                "errors": [e.to_dict() for e in self.errors],
                "warnings": [w.to_dict() for w in self.warnings],
                "info": [i.to_dict() for i in self.info],
            },
        }


class IntegrityChecker:
    """
    Checks the lifecycle invariants of one resource kind.

    Usage:
        ```python
        checker = IntegrityChecker()
        report = await checker.check_all()

        if not report.is_healthy:
            for error in report.errors:
                print(f"  - {error.description}")
        ```
    """

    def __init__(
        self,
        client: TicketGraphClient | None = None,
        kind: ResourceKind = TICKET,
    ) -> None:
        self._client = client or get_ticket_client()
        self._kind = kind

    async def check_all(self) -> IntegrityReport:
        """
        Perform every integrity check.

        Returns:
            IntegrityReport with all issues found
        """
        start_time = datetime.now(timezone.utc)
        report = IntegrityReport()

        await self._client.connect()

        logger.info("Starting integrity check", resource_type=self._kind.name)

        report.active_rows, report.trash_rows = await self._get_counts()

        await self._check_duplicate_uuids(report)
        await self._check_dangling_references(
            report, NodeLabel.TAG_RESOURCE.value, IssueType.DANGLING_TAG
        )
        await self._check_dangling_references(
            report, NodeLabel.PERMISSION.value, IssueType.DANGLING_PERMISSION
        )
        await self._check_required_properties(report)

        report.duration_seconds = (datetime.now(timezone.utc) - start_time).total_seconds()

        logger.info(
            "Integrity check completed",
            is_healthy=report.is_healthy,
            errors=len(report.errors),
            warnings=len(report.warnings),
            duration_s=round(report.duration_seconds, 2),
        )

        return report

    async def _get_counts(self) -> tuple[int, int]:
        query = f"""
        CALL {{ MATCH (a:{self._kind.table_label}) RETURN count(a) AS active }}
        CALL {{ MATCH (t:{self._kind.trash_label}) RETURN count(t) AS trash }}
        RETURN active, trash
        """
        rows = await self._client.execute_cypher(query)
        if not rows:
            return 0, 0
        return rows[0]["active"], rows[0]["trash"]

    async def _check_duplicate_uuids(self, report: IntegrityReport) -> None:
        """A uuid present in both stores means a move half-happened."""
        query = f"""
        MATCH (a:{self._kind.table_label}), (t:{self._kind.trash_label})
        WHERE a.uuid = t.uuid
        RETURN a.uuid AS uuid, a.id AS active_id, t.id AS trash_id, a.name AS name
        LIMIT 100
        """

        results = await self._client.execute_cypher(query)
        report.duplicate_uuids = len(results)

        for row in results:
            report.add_issue(IntegrityIssue(
                issue_type=IssueType.DUPLICATE_UUID,
                severity=IssueSeverity.ERROR,
                description=f"{self._kind.name} '{row['name']}' exists in both active and trash sets",
                resource_id=row["active_id"],
                resource_uuid=row["uuid"],
                node_label=self._kind.table_label,
                details={"trash_id": row["trash_id"]},
            ))

    async def _check_dangling_references(
        self,
        report: IntegrityReport,
        holder_label: str,
        issue_type: IssueType,
    ) -> None:
        """Find references whose (id, location) names no existing row."""
        query = f"""
        MATCH (ref:{holder_label} {{resource_type: $type}})
        WHERE ref.resource <> -1
          AND NOT (
            (ref.resource_location = $table
             AND EXISTS {{ MATCH (a:{self._kind.table_label} {{id: ref.resource}}) }})
            OR
            (ref.resource_location = $trash
             AND EXISTS {{ MATCH (t:{self._kind.trash_label} {{id: ref.resource}}) }})
          )
        RETURN ref.resource AS resource, ref.resource_uuid AS uuid,
               ref.resource_location AS location
        LIMIT 100
        """

        results = await self._client.execute_cypher(query, {
            "type": self._kind.name,
            "table": Location.TABLE.value,
            "trash": Location.TRASH.value,
        })

        if issue_type is IssueType.DANGLING_TAG:
            report.dangling_tags = len(results)
            what = "Tag attachment"
        else:
            report.dangling_permissions = len(results)
            what = "Permission grant"

        for row in results:
            report.add_issue(IntegrityIssue(
                issue_type=issue_type,
                severity=IssueSeverity.ERROR,
                description=(
                    f"{what} points at missing {self._kind.name} "
                    f"{row['resource']} in {row['location']}"
                ),
                resource_id=row["resource"],
                resource_uuid=row["uuid"],
                node_label=holder_label,
                details={"location": row["location"]},
            ))

    async def _check_required_properties(self, report: IntegrityReport) -> None:
        """Rows must have uuid, name, owner."""
        for label in (self._kind.table_label, self._kind.trash_label):
            query = f"""
            MATCH (r:{label})
            WHERE r.uuid IS NULL OR r.name IS NULL OR r.owner IS NULL
            RETURN r.id AS id, r.uuid AS uuid,
                   CASE WHEN r.uuid IS NULL THEN 'uuid' ELSE '' END +
                   CASE WHEN r.name IS NULL THEN ',name' ELSE '' END +
                   CASE WHEN r.owner IS NULL THEN ',owner' ELSE '' END AS missing
            LIMIT 50
            """

            results = await self._client.execute_cypher(query)

            for row in results:
                missing = row["missing"].strip(",")
                report.add_issue(IntegrityIssue(
                    issue_type=IssueType.MISSING_REQUIRED,
                    severity=IssueSeverity.ERROR,
                    description=f"{label} missing required properties: {missing}",
                    resource_id=row["id"],
                    resource_uuid=row["uuid"],
                    node_label=label,
                    details={"missing_properties": missing.split(",")},
                ))
