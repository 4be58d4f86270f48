from pydantic import BaseModel, Field
from typing import Optional, Any
from datetime import datetime
from enum import Enum


class Channel(str, Enum):
    ANDROID = "ANDROID"
    IOS = "IOS"
    WEB = "WEB"


class Currency(str, Enum):
    INR = "INR"
    USD = "USD"


# ============================================
# BIODATA MODELS
# ============================================
class BiodataCreate(BaseModel):
    # Presence and enum membership are checked by the route so that bad
    # input answers 400 with a specific message
    template_id: Optional[str] = None
    form_data: Any = None
    image_path: Optional[str] = None
    channel: Optional[str] = None
    amount: float = 0
    currency: str = Currency.INR.value


class BiodataCreated(BaseModel):
    id: str
    app_user_id: str


class BiodataSummary(BaseModel):
    id: str
    template_id: Optional[str] = None
    form_data: Any = None
    image_path: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        populate_by_name = True


class PaymentStatusResponse(BaseModel):
    payment_status: str
    pdf_ready: bool
    transaction_id: Optional[str] = None


# ============================================
# PAYMENT MODELS
# ============================================
class UpdatePaymentRequest(BaseModel):
    id: Optional[str] = None
    transaction_id: Optional[str] = None
    product_id: Optional[str] = None


# ============================================
# TEMPLATE MODELS
# ============================================
class TemplateListItem(BaseModel):
    id: str
    image_url: str
    price: float
    image_only: bool = False


class TemplatePreviewRequest(BaseModel):
    template_id: str
    form_data: Any = Field(default_factory=list)
    image_path: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: datetime
    version: str
