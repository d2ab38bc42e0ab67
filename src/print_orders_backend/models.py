from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel


class OrderStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderSubmission(CamelModel):
    full_name: str
    phone_number: str
    print_type: str
    binding_color_type: Optional[str] = None
    copies: Optional[int] = None
    paper_size: Optional[str] = None
    print_side: Optional[str] = None
    selected_pages: Optional[str] = None
    color_pages: Optional[str] = None
    bw_pages: Optional[str] = None
    special_instructions: Optional[str] = None
    total_cost: float = 0

    @field_validator(
        "binding_color_type",
        "copies",
        "paper_size",
        "print_side",
        "selected_pages",
        "color_pages",
        "bw_pages",
        "special_instructions",
        mode="before",
    )
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        # The intake form sends empty strings for untouched optional fields
        if value == "" or value == 0:
            return None
        return value

    @field_validator("total_cost", mode="before")
    @classmethod
    def _missing_cost_is_zero(cls, value: Any) -> Any:
        return value or 0


class OrderFileInfo(CamelModel):
    name: str
    size: int
    type: str
    path: str


class Order(CamelModel):
    order_id: str
    full_name: str
    phone_number: str
    print_type: str
    binding_color_type: Optional[str] = None
    copies: Optional[int] = None
    paper_size: Optional[str] = None
    print_side: Optional[str] = None
    selected_pages: Optional[str] = None
    color_pages: Optional[str] = None
    bw_pages: Optional[str] = None
    special_instructions: Optional[str] = None
    order_date: str
    status: str = OrderStatus.PENDING.value
    total_cost: float = 0
    created_at: Optional[str] = None
    files: List[OrderFileInfo] = []


class SubmitOrderResponse(CamelModel):
    success: bool
    order_id: str
    message: str


class LoginRequest(CamelModel):
    username: Optional[str] = None
    password: Optional[str] = None

    @field_validator("username", "password", mode="before")
    @classmethod
    def _non_string_is_missing(cls, value: Any) -> Any:
        # Wrong-typed credentials are rejected as bad credentials, not bad input
        return value if isinstance(value, str) else None


class LoginResponse(CamelModel):
    success: bool
    session_id: Optional[str] = None
    message: str


class VerifyRequest(CamelModel):
    session_id: Optional[str] = None


class VerifyResponse(CamelModel):
    valid: bool


class StatusUpdate(CamelModel):
    status: Optional[str] = None


class ActionResponse(CamelModel):
    success: bool
    message: str


class HealthResponse(CamelModel):
    status: str
    timestamp: str
