"""
Sync Error Handler

Exception taxonomy for the sync engine and a collector for per-item skip
reasons. Transport and auth failures abort a pull; validation and
reconciliation failures skip a single item.
"""

import logging
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Error severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification."""
    AUTH = "auth"
    NETWORK = "network"
    EXTERNAL_API = "external_api"
    VALIDATION = "validation"
    DATABASE = "database"
    BUSINESS_RULE = "business_rule"


class EskimoSyncError(Exception):
    """Base class for all sync engine errors."""
    code = "SYNC_ERROR"
    category = ErrorCategory.BUSINESS_RULE
    severity = ErrorSeverity.MEDIUM
    default_message = "Sync error"

    def __init__(self, message: Optional[str] = None, **details):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_result(self) -> str:
        """Stringified form returned in the ``result`` field of a route."""
        return f"{self.code}: {self.message}"


class AuthError(EskimoSyncError):
    """Cannot obtain or validate an access token."""
    code = "AUTH_ERROR"
    category = ErrorCategory.AUTH
    severity = ErrorSeverity.CRITICAL
    default_message = "API Error: Could Not Connect To API"


class TransportError(EskimoSyncError):
    """Network failure or timeout talking to the EPOS API."""
    code = "TRANSPORT_ERROR"
    category = ErrorCategory.NETWORK
    severity = ErrorSeverity.HIGH
    default_message = "API Error: Could Not Connect To API"


class RemoteDataError(EskimoSyncError):
    """Transport succeeded but the body was empty or invalid."""
    code = "REMOTE_DATA_ERROR"
    category = ErrorCategory.EXTERNAL_API
    severity = ErrorSeverity.HIGH
    default_message = "API Error: Could Not Retrieve REST data from API"


class ValidationError(EskimoSyncError):
    """Bad caller-supplied parameter, rejected before any remote call."""
    code = "VALIDATION_ERROR"
    category = ErrorCategory.VALIDATION
    severity = ErrorSeverity.LOW
    default_message = "Invalid parameter"


class ReconciliationError(EskimoSyncError):
    """Business-rule failure for a single entity."""
    code = "RECONCILIATION_ERROR"
    category = ErrorCategory.BUSINESS_RULE
    severity = ErrorSeverity.MEDIUM
    default_message = "Reconciliation failed"


class LocalStoreError(EskimoSyncError):
    """A local store write for a single entity was rejected."""
    code = "LOCAL_STORE_ERROR"
    category = ErrorCategory.DATABASE
    severity = ErrorSeverity.HIGH
    default_message = "Local store write failed"


@dataclass
class SyncErrorRecord:
    """A single skipped or failed item."""
    identifier: str
    code: str
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    timestamp: datetime = field(default_factory=datetime.utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to dictionary."""
        return {
            'identifier': self.identifier,
            'code': self.code,
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            'timestamp': self.timestamp.isoformat(),
            'metadata': self.metadata
        }


class ErrorCollector:
    """Accumulates per-item skip reasons for a single sync pass."""

    def __init__(self, operation: str):
        self.operation = operation
        self.records: List[SyncErrorRecord] = []

    def skip(self, identifier: str, reason: str, **metadata) -> None:
        """Record an item skipped for a business-rule reason."""
        self.add(identifier, ReconciliationError(reason), **metadata)

    def add(self, identifier: str, error: EskimoSyncError, **metadata) -> None:
        record = SyncErrorRecord(
            identifier=str(identifier),
            code=error.code,
            message=error.message,
            category=error.category,
            severity=error.severity,
            metadata=metadata
        )
        self.records.append(record)
        logger.info(f"{self.operation}: skipped [{identifier}] {error.message}")

    def __len__(self) -> int:
        return len(self.records)

    def to_list(self) -> List[Dict[str, Any]]:
        return [record.to_dict() for record in self.records]

    def summary(self) -> Dict[str, Any]:
        """Count skipped items by error code."""
        by_code: Dict[str, int] = {}
        for record in self.records:
            by_code[record.code] = by_code.get(record.code, 0) + 1
        return {
            'operation': self.operation,
            'total_skipped': len(self.records),
            'by_code': by_code
        }
