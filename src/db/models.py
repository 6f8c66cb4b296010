# provide dataclass models, plus conversion from/to stored rows
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Literal, Optional, Tuple, Union

ProductKind = Literal["physical", "subscription"]
ProductStatus = Literal["active", "inactive"]
InvoiceStatus = Literal["Completed", "Pending", "Failed"]

INVOICE_STATUSES: Tuple[str, ...] = ("Completed", "Pending", "Failed")
PRODUCT_STATUSES: Tuple[str, ...] = ("active", "inactive")


def parse_ts(val) -> Optional[datetime]:
    if val is None or val == "":
        return None
    if isinstance(val, datetime):
        return val
    return datetime.fromisoformat(val)


@dataclass(frozen=True)
class User:
    id: int
    email: str
    created_at: datetime


@dataclass(frozen=True)
class Customer:
    id: int
    name: str
    email: str
    phone: str
    address: str
    created_at: datetime
    owner_id: int

    @classmethod
    def from_record(cls, row: Dict[str, Any]) -> "Customer":
        return cls(
            id=row["id"],
            name=row["name"],
            email=row["email"] or "",
            phone=row["phone"] or "",
            address=row["address"] or "",
            created_at=parse_ts(row["created_at"]),
            owner_id=row["owner_id"],
        )


@dataclass(frozen=True)
class PhysicalDetails:
    stock: int
    purchase_price: float

    kind: ProductKind = field(default="physical", init=False)


@dataclass(frozen=True)
class SubscriptionDetails:
    details: str
    contract_duration: str  # key of core.contracts.CONTRACT_DURATIONS

    kind: ProductKind = field(default="subscription", init=False)


ProductDetails = Union[PhysicalDetails, SubscriptionDetails]


@dataclass(frozen=True)
class ProductDraft:
    """A product as entered in the form, before it has an id."""

    name: str
    selling_price: float
    details: ProductDetails
    status: ProductStatus = "active"

    def to_record(self) -> Dict[str, Any]:
        rec: Dict[str, Any] = {
            "name": self.name,
            "kind": self.details.kind,
            "selling_price": self.selling_price,
            "status": self.status,
            "stock": None,
            "purchase_price": None,
            "subscription_details": None,
            "contract_duration": None,
        }
        if isinstance(self.details, PhysicalDetails):
            rec["stock"] = self.details.stock
            rec["purchase_price"] = self.details.purchase_price
        else:
            rec["subscription_details"] = self.details.details
            rec["contract_duration"] = self.details.contract_duration
        return rec


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    selling_price: float
    details: ProductDetails
    status: ProductStatus
    created_at: datetime
    owner_id: int

    @property
    def kind(self) -> ProductKind:
        return self.details.kind

    @property
    def is_subscription(self) -> bool:
        return isinstance(self.details, SubscriptionDetails)

    @classmethod
    def from_record(cls, row: Dict[str, Any]) -> "Product":
        if row["kind"] == "physical":
            details: ProductDetails = PhysicalDetails(
                stock=int(row["stock"] or 0),
                purchase_price=float(row["purchase_price"] or 0.0),
            )
        elif row["kind"] == "subscription":
            details = SubscriptionDetails(
                details=row["subscription_details"] or "",
                contract_duration=row["contract_duration"] or "lifetime",
            )
        else:
            raise ValueError(f"Unknown product kind: {row['kind']!r}")
        return cls(
            id=row["id"],
            name=row["name"],
            selling_price=float(row["selling_price"]),
            details=details,
            status=row["status"],
            created_at=parse_ts(row["created_at"]),
            owner_id=row["owner_id"],
        )


@dataclass(frozen=True)
class CustomerSnapshot:
    """Customer fields copied onto an invoice when it is created."""

    name: str
    email: str = ""
    phone: str = ""
    address: str = ""

    @classmethod
    def of(cls, customer: Customer) -> "CustomerSnapshot":
        return cls(
            name=customer.name,
            email=customer.email,
            phone=customer.phone,
            address=customer.address,
        )


@dataclass(frozen=True)
class InvoiceItem:
    id: int
    invoice_id: int
    product_id: Optional[int]
    quantity: int
    unit_price: float  # selling price at the time of invoicing
    position: int
    contract_start: Optional[datetime] = None
    contract_end: Optional[datetime] = None
    product: Optional[Product] = None

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    @property
    def product_name(self) -> str:
        if self.product:
            return self.product.name
        if self.product_id is None:
            return "Deleted product"
        return f"Product #{self.product_id}"

    @classmethod
    def from_record(
        cls, row: Dict[str, Any], product: Optional[Product] = None
    ) -> "InvoiceItem":
        return cls(
            id=row["id"],
            invoice_id=row["invoice_id"],
            product_id=row["product_id"],
            quantity=int(row["quantity"]),
            unit_price=float(row["unit_price"]),
            position=int(row["position"]),
            contract_start=parse_ts(row["contract_start"]),
            contract_end=parse_ts(row["contract_end"]),
            product=product,
        )


@dataclass(frozen=True)
class Invoice:
    id: int
    number: str
    customer: CustomerSnapshot
    items: Tuple[InvoiceItem, ...]
    total: float
    created_at: datetime
    status: InvoiceStatus
    payment_method: str
    owner_id: int

    @property
    def has_subscription(self) -> bool:
        return any(i.product is not None and i.product.is_subscription for i in self.items)

    @classmethod
    def from_record(
        cls, row: Dict[str, Any], items: Tuple[InvoiceItem, ...] = ()
    ) -> "Invoice":
        return cls(
            id=row["id"],
            number=row["number"],
            customer=CustomerSnapshot(
                name=row["customer_name"],
                email=row["customer_email"] or "",
                phone=row["customer_phone"] or "",
                address=row["customer_address"] or "",
            ),
            items=items,
            total=float(row["total"]),
            created_at=parse_ts(row["created_at"]),
            status=row["status"],
            payment_method=row["payment_method"] or "",
            owner_id=row["owner_id"],
        )


@dataclass(frozen=True)
class Event:
    id: int
    title: str
    description: str
    start_time: datetime
    end_time: datetime
    created_at: datetime
    owner_id: int
    status: Optional[str] = None  # derived on read, never stored

    @classmethod
    def from_record(cls, row: Dict[str, Any]) -> "Event":
        return cls(
            id=row["id"],
            title=row["title"],
            description=row["description"] or "",
            start_time=parse_ts(row["start_time"]),
            end_time=parse_ts(row["end_time"]),
            created_at=parse_ts(row["created_at"]),
            owner_id=row["owner_id"],
        )


@dataclass(frozen=True)
class SubscriptionWatch:
    """Read-time view of one subscription line on a completed invoice."""

    item_id: int
    invoice_number: str
    customer_name: str
    product_name: str
    contract_start: Optional[datetime]
    contract_end: datetime
    days_remaining: int
    status: str


@dataclass(frozen=True)
class InvoiceLineDraft:
    """One product picked in the new-invoice form."""

    product: Product
    quantity: int = 1

    @property
    def unit_price(self) -> float:
        return self.product.selling_price
