from pydantic import BaseModel, Field


class VIPPurchaseRequest(BaseModel):
    # Allowed values are checked by the purchase workflow so bad input maps to 400, not 422
    subscription_type: str | None = None
    entity_id: str | None = None
    duration: int | None = None
    payment_method: str | None = None


class VIPCancelRequest(BaseModel):
    subscription_type: str = Field(..., min_length=1, max_length=20)


class AdminVerifyPaymentRequest(BaseModel):
    admin_notes: str | None = Field(default=None, max_length=2000)


class AdminRejectPaymentRequest(BaseModel):
    admin_notes: str | None = Field(default=None, max_length=2000)


class VIPPriceInfo(BaseModel):
    duration: int
    price: int
    discount: int
    originalPrice: int | None = None
    popular: bool = False


class VIPPricingInfo(BaseModel):
    name: str
    description: str
    features: list[str]
    prices: list[VIPPriceInfo]


class VIPPricingResponse(BaseModel):
    success: bool = True
    type: str
    pricing: VIPPricingInfo


class AdminRejectPaymentResponse(BaseModel):
    success: bool = True
    message: str
