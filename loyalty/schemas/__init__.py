"""Pydantic schemas for request/response validation."""

from loyalty.schemas.audit import AuditLogListResponse, AuditLogResponse
from loyalty.schemas.auth import LoginRequest, LoginResponse, StaffProfileResponse
from loyalty.schemas.commission import (
    CommissionCalculateRequest,
    CommissionResultResponse,
    CommissionRuleCreate,
    CommissionRuleResponse,
    CommissionRuleToggle,
    CommissionRuleUpdate,
    CommissionSettingsListResponse,
    CommissionSettingsResponse,
    CommissionSettingsUpdate,
    RuleConditionsSchema,
    SettingsCalculateRequest,
    TierMultipliers,
)
from loyalty.schemas.sale import (
    CommissionSummaryResponse,
    RecalculateRequest,
    RecalculationSummaryResponse,
    SaleCreate,
    SaleListResponse,
    SaleResponse,
    TierCommissionTotals,
)
from loyalty.schemas.user import (
    CustomerCreate,
    CustomerListResponse,
    CustomerResponse,
    CustomerUpdate,
)

__all__ = [
    # Auth
    "LoginRequest",
    "LoginResponse",
    "StaffProfileResponse",
    # Commission
    "RuleConditionsSchema",
    "CommissionRuleCreate",
    "CommissionRuleUpdate",
    "CommissionRuleToggle",
    "CommissionRuleResponse",
    "CommissionCalculateRequest",
    "CommissionResultResponse",
    "TierMultipliers",
    "CommissionSettingsUpdate",
    "CommissionSettingsResponse",
    "CommissionSettingsListResponse",
    "SettingsCalculateRequest",
    # Sales
    "SaleCreate",
    "SaleResponse",
    "SaleListResponse",
    "TierCommissionTotals",
    "CommissionSummaryResponse",
    "RecalculateRequest",
    "RecalculationSummaryResponse",
    # Customers
    "CustomerCreate",
    "CustomerUpdate",
    "CustomerResponse",
    "CustomerListResponse",
    # Audit
    "AuditLogResponse",
    "AuditLogListResponse",
]
