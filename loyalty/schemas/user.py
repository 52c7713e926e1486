"""Customer schemas."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from loyalty.models.user import Tier


class CustomerCreate(BaseModel):
    """Register a customer who earns commission on sales."""

    username: str = Field(..., min_length=3, max_length=100)
    display_name: str = Field(..., min_length=1, max_length=100)
    loyalty_tier: Tier = Tier.LEAD


class CustomerUpdate(BaseModel):
    """Change a customer's tier or status."""

    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    loyalty_tier: Optional[Tier] = None
    is_active: Optional[bool] = None


class CustomerResponse(BaseModel):
    """Customer information for admin view."""

    id: int
    username: str
    display_name: str
    loyalty_tier: Tier
    is_active: bool
    created_at: datetime

    # Stats
    sales_count: int = 0

    model_config = {"from_attributes": True}


class CustomerListResponse(BaseModel):
    """Paginated customers."""

    items: List[CustomerResponse]
    total: int
    page: int
    per_page: int
    pages: int
