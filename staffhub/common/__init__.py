"""Common module — shared utilities for StaffHub."""

from staffhub.common.audit import AuditTrail, create_audit_entry
from staffhub.common.cache import (
    BalanceCache,
    NullBalanceCache,
    TTLBalanceCache,
    build_balance_cache,
    get_balance_cache,
)
from staffhub.common.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    AttendanceStatus,
    BreakStatus,
    LeaveStatus,
    LeaveType,
)
from staffhub.common.exceptions import (
    AppException,
    ConcurrencyError,
    ConflictError,
    DatabaseUnavailableError,
    DuplicateException,
    InsufficientBalanceError,
    InvalidStateTransition,
    NotFoundException,
    ValidationException,
    register_exception_handlers,
)
from staffhub.common.pagination import (
    PaginationMeta,
    PaginationParams,
    paginate,
)
from staffhub.common.transactions import run_in_transaction

__all__ = [
    # Audit
    "AuditTrail",
    "create_audit_entry",
    # Cache
    "BalanceCache",
    "NullBalanceCache",
    "TTLBalanceCache",
    "build_balance_cache",
    "get_balance_cache",
    # Constants / Enums
    "AttendanceStatus",
    "BreakStatus",
    "LeaveStatus",
    "LeaveType",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    # Exceptions
    "AppException",
    "ConcurrencyError",
    "ConflictError",
    "DatabaseUnavailableError",
    "DuplicateException",
    "InsufficientBalanceError",
    "InvalidStateTransition",
    "NotFoundException",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginationMeta",
    "PaginationParams",
    "paginate",
    # Transactions
    "run_in_transaction",
]
