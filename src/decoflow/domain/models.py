from __future__ import annotations
from dataclasses import dataclass, field
from typing import ClassVar, Optional

from decoflow.domain.payloads import CanvasPayload, ClientData, LineItem

TRANSACTION_TYPES = ("sale", "rental", "decoration")
QUOTATION_STATUSES = ("pending", "converted")


@dataclass(frozen=True)
class Section:
    id: str
    name: str
    color: Optional[str] = None
    icon: Optional[str] = None
    image: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ("image",)


@dataclass(frozen=True)
class SectionSummary:
    section: Section
    product_count: int


@dataclass(frozen=True)
class Product:
    id: str
    section_id: str
    name: str
    description: Optional[str] = None
    price: Optional[float] = None
    rent_price: Optional[float] = None
    image: Optional[str] = None
    image_secondary1: Optional[str] = None
    image_secondary2: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ("image", "image_secondary1", "image_secondary2")


@dataclass(frozen=True)
class Canvas:
    id: str
    name: Optional[str] = None
    data: CanvasPayload = field(default_factory=CanvasPayload)
    thumbnail: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ("thumbnail",)


@dataclass(frozen=True)
class Transaction:
    id: str
    type: str
    product_name: str
    unit_price: float
    total_amount: float
    date: str
    product_id: Optional[str] = None
    quantity: int = 1
    discount: float = 0.0
    customer_name: Optional[str] = None
    client_data: Optional[ClientData] = None
    client_id: Optional[str] = None
    notes: Optional[str] = None
    delivery_date: Optional[str] = None
    items: tuple[LineItem, ...] = ()
    is_installment: bool = False
    total_price: Optional[float] = None
    amount_paid: float = 0.0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def balance_due(self) -> float:
        full = self.total_price if self.total_price is not None else self.total_amount
        return max(0.0, float(full) - float(self.amount_paid))


@dataclass(frozen=True)
class Rental:
    id: str
    transaction_id: str
    start_date: str
    status: str = "active"
    end_date: Optional[str] = None
    deposit: float = 0.0
    returned_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class Decoration:
    id: str
    transaction_id: str
    start_date: str
    status: str = "active"
    end_date: Optional[str] = None
    deposit: float = 0.0
    items: tuple[LineItem, ...] = ()
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class Expense:
    id: str
    category: str
    description: str
    amount: float
    date: str
    receipt_image: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    IMAGE_FIELDS: ClassVar[tuple[str, ...]] = ("receipt_image",)


@dataclass(frozen=True)
class Quotation:
    id: str
    type: str
    product_name: str
    unit_price: float
    total_amount: float
    date: str
    quotation_number: Optional[str] = None
    product_id: Optional[str] = None
    quantity: int = 1
    discount: float = 0.0
    customer_name: Optional[str] = None
    client_data: Optional[ClientData] = None
    client_id: Optional[str] = None
    notes: Optional[str] = None
    delivery_date: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    deposit: float = 0.0
    items: tuple[LineItem, ...] = ()
    status: str = "pending"
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class Client:
    id: str
    name: str
    phone: Optional[str] = None
    document_id: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class SavedReport:
    id: str
    start_date: str
    end_date: str
    summary: dict
    created_at: str
    name: Optional[str] = None
    period_type: Optional[str] = None
    filters: Optional[dict] = None
    expenses_by_category: Optional[list] = None
    transactions: Optional[list] = None


@dataclass(frozen=True)
class Note:
    id: str
    title: str
    date: str
    content: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class AmountCount:
    total: float
    count: int


@dataclass(frozen=True)
class FinanceSummary:
    sales: AmountCount
    rentals: AmountCount
    decorations: AmountCount
    expenses: AmountCount
    total_income: float
    balance: float


@dataclass(frozen=True)
class CategoryTotal:
    category: str
    total: float
    count: int
