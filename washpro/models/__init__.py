"""
WashPro SQLAlchemy Models
=========================

Central import point for all ORM models. Import ``Base`` from here for
Alembic auto-generation and for the ``create_all`` convenience in tests.

Usage::

    from washpro.models import Base, Company, Cleaner, Job
"""

# -- Base & Mixins --
from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin

# -- Accounts --
from .user import Customer, User, UserRole

# -- Companies --
from .company import Company, CompanyGeofence, CompanyPackageType, FeePackageType

# -- Cleaners & shifts --
from .cleaner import (
    Cleaner,
    CleanerGeofenceAssignment,
    CleanerInvitation,
    CleanerPaymentToken,
    CleanerStatus,
    InvitationStatus,
    ShiftSession,
)

# -- Jobs --
from .job import (
    AssignmentMode,
    Job,
    JobStatus,
    OfflineJob,
    OfflineJobStatus,
    PaymentMethod,
)

# -- Financials --
from .financial import (
    CompanyWithdrawal,
    JobFinancials,
    Transaction,
    TransactionDirection,
    TransactionType,
    WithdrawalStatus,
)

# -- Complaints --
from .complaint import Complaint, ComplaintStatus, ComplaintType

# -- Notifications --
from .notification import PushPlatform, PushSubscription

# -- Platform settings --
from .platform import FeeSetting, PlatformSetting

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    # Accounts
    "User",
    "UserRole",
    "Customer",
    # Companies
    "Company",
    "CompanyGeofence",
    "CompanyPackageType",
    "FeePackageType",
    # Cleaners
    "Cleaner",
    "CleanerStatus",
    "CleanerInvitation",
    "InvitationStatus",
    "CleanerGeofenceAssignment",
    "CleanerPaymentToken",
    "ShiftSession",
    # Jobs
    "Job",
    "JobStatus",
    "PaymentMethod",
    "AssignmentMode",
    "OfflineJob",
    "OfflineJobStatus",
    # Financials
    "JobFinancials",
    "CompanyWithdrawal",
    "WithdrawalStatus",
    "Transaction",
    "TransactionType",
    "TransactionDirection",
    # Complaints
    "Complaint",
    "ComplaintType",
    "ComplaintStatus",
    # Notifications
    "PushSubscription",
    "PushPlatform",
    # Platform settings
    "PlatformSetting",
    "FeeSetting",
]
