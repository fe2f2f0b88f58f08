from typing import Annotated, Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints


class TranslationRequest(BaseModel):
    description: Optional[str] = None


class TranslationResponse(BaseModel):
    description_ko: str
    description_ja: str
    description_cn: str
    description_vi: str
    description_ru: str
    description_kz: str
    description_es: str
    description_fr: str
    description_it: str


class ErrorResponse(BaseModel):
    error: str


class MenuItemPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Annotated[str, StringConstraints(min_length=1, max_length=160)]
    description: str = Field(default="", max_length=2000, description="Source (English) description")
    price: float = Field(..., ge=0)
    vat: Optional[float] = Field(default=None, ge=0, le=100)
    category_id: Optional[str] = None
    image_url: Optional[str] = None


class MenuItemSaveResponse(BaseModel):
    item: Dict[str, Any]
    warnings: List[str] = Field(default_factory=list)


class MenuItemPage(BaseModel):
    items: List[Dict[str, Any]]
    total: int
    page: int
    page_size: int


class CategoryPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Annotated[str, StringConstraints(min_length=1, max_length=80)]
    display_name: Annotated[str, StringConstraints(min_length=1, max_length=120)]
    display_order: int = 0
    is_active: bool = True


class VATUpdatePayload(BaseModel):
    item_ids: List[str] = Field(..., min_length=1)
    vat: float = Field(..., ge=0, le=100, description="VAT rate in percent")


class VATUpdateResponse(BaseModel):
    updated: int
    vat: float


class PageViewPayload(BaseModel):
    page_path: str = Field(default="/", max_length=512)


class AnalyticsSummaryResponse(BaseModel):
    total_views: int
    today_views: int
    today_share: float
    since: str


class AutoFixResponse(BaseModel):
    fixed_count: int
    error_count: int
    total: int
    rate_limited: bool
    warnings: List[str] = Field(default_factory=list)


class LoginPayload(BaseModel):
    email: EmailStr
    password: Annotated[str, StringConstraints(min_length=6, max_length=72)]


class LoginSuccessResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: Literal["bearer"] = "bearer"
    expires_in: int
    expires_at: int
