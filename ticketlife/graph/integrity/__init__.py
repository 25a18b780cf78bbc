"""
Lifecycle Integrity Checking.

Detects rows present in both stores, dangling tag and permission references,
and rows missing required properties.
"""

from ticketlife.graph.integrity.integrity_checker import (
    IntegrityChecker,
    IntegrityReport,
    IntegrityIssue,
    IssueType,
    IssueSeverity,
)

__all__ = [
    "IntegrityChecker",
    "IntegrityReport",
    "IntegrityIssue",
    "IssueType",
    "IssueSeverity",
]
