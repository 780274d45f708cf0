from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED_AMOUNT = "fixed_amount"
    WAIVER = "waiver"


class ArticleTypeFee(BaseModel):
    article_type: str = Field(..., min_length=1)
    fee: float = Field(..., ge=0)


class CountryDiscount(BaseModel):
    country: str = Field(..., min_length=2)
    discount_type: DiscountType
    discount_value: float = Field(..., ge=0)
    description: str = ""

    @field_validator("country")
    @classmethod
    def _upper_country(cls, v: str) -> str:
        return v.strip().upper()


class InstitutionDiscount(BaseModel):
    institution_name: str = Field(..., min_length=1)
    discount_type: Literal["percentage", "fixed_amount"]
    discount_value: float = Field(..., ge=0)
    valid_until: Optional[datetime] = None
    description: str = ""


class FeeConfig(BaseModel):
    """
    APC 收费配置（单文档，name='default' 为生效配置）。
    """

    name: str = "default"
    description: str = ""
    base_fee: float = Field(..., ge=0)
    currency: str = "USD"
    article_type_fees: List[ArticleTypeFee] = Field(default_factory=list)
    country_discounts: List[CountryDiscount] = Field(default_factory=list)
    institution_discounts: List[InstitutionDiscount] = Field(default_factory=list)
    automatic_waiver_countries: List[str] = Field(default_factory=list)
    payment_deadline_days: int = Field(30, ge=1)
    is_active: bool = True
    allow_waiver_requests: bool = True
    require_payment_before_production: bool = True
    supported_payment_methods: List[Literal["stripe", "paypal", "bank_transfer", "waiver"]] = Field(
        default_factory=lambda: ["stripe", "bank_transfer", "waiver"]
    )

    @field_validator("automatic_waiver_countries")
    @classmethod
    def _upper_waiver_countries(cls, v: List[str]) -> List[str]:
        return [c.strip().upper() for c in v if c and c.strip()]


class FeeCalculation(BaseModel):
    base_fee: float
    final_fee: float
    discount_amount: float
    discount_reason: str = ""
    is_waiver: bool = False
    currency: str = "USD"


class FeeCalculateRequest(BaseModel):
    article_type: str = Field(..., min_length=1)
    country: Optional[str] = None
    institution: Optional[str] = None


def default_fee_config() -> FeeConfig:
    """出厂默认收费表（reset 接口写入的内容）。"""
    return FeeConfig(
        name="default",
        description="Default APC fee structure",
        base_fee=2000,
        currency="USD",
        article_type_fees=[
            ArticleTypeFee(article_type="research", fee=2000),
            ArticleTypeFee(article_type="review", fee=1500),
            ArticleTypeFee(article_type="case-study", fee=1200),
            ArticleTypeFee(article_type="editorial", fee=0),
            ArticleTypeFee(article_type="letter", fee=500),
        ],
        country_discounts=[
            CountryDiscount(country="AF", discount_type=DiscountType.WAIVER, discount_value=100, description="Low-income country waiver"),
            CountryDiscount(country="BD", discount_type=DiscountType.WAIVER, discount_value=100, description="Low-income country waiver"),
            CountryDiscount(country="ET", discount_type=DiscountType.WAIVER, discount_value=100, description="Low-income country waiver"),
            CountryDiscount(country="IN", discount_type=DiscountType.PERCENTAGE, discount_value=50, description="Developing country discount"),
            CountryDiscount(country="CN", discount_type=DiscountType.PERCENTAGE, discount_value=30, description="Developing country discount"),
            CountryDiscount(country="BR", discount_type=DiscountType.PERCENTAGE, discount_value=40, description="Developing country discount"),
        ],
        payment_deadline_days=30,
        automatic_waiver_countries=["AF", "BD", "ET", "NP", "RW"],
        supported_payment_methods=["stripe", "paypal", "bank_transfer", "waiver"],
    )
