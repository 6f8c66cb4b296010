# src/db/crud.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from passlib.context import CryptContext

from core.contracts import CONTRACT_DURATIONS, contract_end
from core.invoice_calc import InvoiceNumberSequence, invoice_total, line_total, total_by_status
from core.status import classify_days, days_remaining, with_event_statuses
from db import models
from db.access import DataAccess, Query, Session
from utils.errors import RemoteOperationFailed, Unauthenticated, ValidationFailed
from utils.logger import get_logger

_logger = get_logger(__name__)

PAYMENT_METHODS = ("Credit Card", "Cash", "Bank Transfer")

_invoice_numbers = InvoiceNumberSequence()


def _require_user(backend: DataAccess) -> int:
    uid = backend.current_user_id()
    if uid is None:
        raise Unauthenticated()
    return uid


def _required(**fields: str) -> None:
    missing = [name for name, val in fields.items() if not (val or "").strip()]
    if missing:
        raise ValidationFailed(f"Required field(s) missing: {', '.join(missing)}")


# ---------------------------
# Auth & Registration
# ---------------------------


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


def _hash_password(pwd: str) -> str:
    return pwd_context.hash(pwd)


def _verify_password(pwd: str, stored: str) -> bool:
    try:
        return pwd_context.verify(pwd, stored)
    except ValueError:
        # unrecognised or malformed hash
        return False


def _user_from_row(row: Dict) -> models.User:
    return models.User(
        id=int(row["id"]),
        email=row["email"],
        created_at=models.parse_ts(row["created_at"]),
    )


async def email_available(backend: DataAccess, email: str) -> bool:
    """True if no account is registered with the given email."""
    rows = await backend.get(
        "users", Query(filters={"email": email.strip().lower()})
    )
    return not rows


async def register_user(
    backend: DataAccess, email: str, pwd: str, now: Optional[datetime] = None
) -> models.User:
    """Create a new account. Does not sign it in."""
    email = (email or "").strip().lower()
    _required(email=email, password=pwd)
    if "@" not in email:
        raise ValidationFailed("Email address is not valid.")
    if len(pwd) < 6:
        raise ValidationFailed("Password must be at least 6 characters.")
    if not await email_available(backend, email):
        raise ValidationFailed("Email already taken.")

    row = await backend.insert(
        "users",
        {
            "email": email,
            "pwd_hash": _hash_password(pwd),
            "created_at": now or datetime.now(),
        },
    )
    _logger.info(f"Registered user {row['id']}")
    return _user_from_row(row)


async def login(
    backend: DataAccess, email: str, pwd: str, now: Optional[datetime] = None
) -> Optional[models.User]:
    """Return the User and open a session on ``backend`` if the credentials match."""
    rows = await backend.get(
        "users", Query(filters={"email": (email or "").strip().lower()})
    )
    if not rows or not _verify_password(pwd, rows[0]["pwd_hash"]):
        return None
    user = _user_from_row(rows[0])
    backend.session = Session(
        user_id=user.id, email=user.email, signed_in_at=now or datetime.now()
    )
    _logger.info(f"User {user.id} signed in")
    return user


def logout(backend: DataAccess) -> None:
    if backend.session is not None:
        _logger.info(f"User {backend.session.user_id} signed out")
    backend.session = None


async def get_user(backend: DataAccess, uid: int) -> Optional[models.User]:
    rows = await backend.get("users", Query(filters={"id": uid}))
    return _user_from_row(rows[0]) if rows else None


# ---------------------------
# Customers
# ---------------------------


async def list_customers(backend: DataAccess) -> List[models.Customer]:
    """The current user's customers, newest first."""
    uid = _require_user(backend)
    rows = await backend.get(
        "customers", Query(owner_id=uid, order_by="created_at", descending=True)
    )
    return [models.Customer.from_record(r) for r in rows]


async def get_customer(backend: DataAccess, cid: int) -> Optional[models.Customer]:
    uid = _require_user(backend)
    rows = await backend.get("customers", Query(owner_id=uid, filters={"id": cid}))
    return models.Customer.from_record(rows[0]) if rows else None


async def create_customer(
    backend: DataAccess,
    name: str,
    email: str,
    phone: str,
    address: str = "",
    now: Optional[datetime] = None,
) -> models.Customer:
    uid = _require_user(backend)
    _required(name=name, email=email, phone=phone)
    row = await backend.insert(
        "customers",
        {
            "name": name.strip(),
            "email": email.strip(),
            "phone": phone.strip(),
            "address": (address or "").strip(),
            "created_at": now or datetime.now(),
            "owner_id": uid,
        },
    )
    _logger.info(f"Created customer {row['id']}")
    return models.Customer.from_record(row)


async def update_customer(
    backend: DataAccess, cid: int, name: str, email: str, phone: str, address: str = ""
) -> None:
    """
    Edit a customer record. Invoices keep the customer fields they were
    created with.
    """
    uid = _require_user(backend)
    _required(name=name, email=email, phone=phone)
    await backend.update(
        "customers",
        cid,
        {
            "name": name.strip(),
            "email": email.strip(),
            "phone": phone.strip(),
            "address": (address or "").strip(),
        },
        owner_id=uid,
    )


async def delete_customers(backend: DataAccess, ids: Iterable[int]) -> None:
    uid = _require_user(backend)
    ids = list(ids)
    await backend.delete("customers", ids, owner_id=uid)
    _logger.info(f"Deleted customers {ids}")


# ---------------------------
# Products
# ---------------------------


def _validate_product(draft: models.ProductDraft) -> None:
    _required(name=draft.name)
    if draft.selling_price < 0:
        raise ValidationFailed("Selling price cannot be negative.")
    if draft.status not in models.PRODUCT_STATUSES:
        raise ValidationFailed(f"Unknown product status: {draft.status!r}")
    details = draft.details
    if isinstance(details, models.PhysicalDetails):
        if details.stock < 0:
            raise ValidationFailed("Stock cannot be negative.")
        if details.purchase_price < 0:
            raise ValidationFailed("Purchase price cannot be negative.")
    elif details.contract_duration not in CONTRACT_DURATIONS:
        raise ValidationFailed(
            f"Unknown contract duration: {details.contract_duration!r}"
        )


async def list_products(
    backend: DataAccess, active_only: bool = False
) -> List[models.Product]:
    """The current user's products, newest first."""
    uid = _require_user(backend)
    filters = {"status": "active"} if active_only else {}
    rows = await backend.get(
        "products",
        Query(owner_id=uid, filters=filters, order_by="created_at", descending=True),
    )
    return [models.Product.from_record(r) for r in rows]


async def get_product(backend: DataAccess, pid: int) -> Optional[models.Product]:
    uid = _require_user(backend)
    rows = await backend.get("products", Query(owner_id=uid, filters={"id": pid}))
    return models.Product.from_record(rows[0]) if rows else None


async def create_product(
    backend: DataAccess, draft: models.ProductDraft, now: Optional[datetime] = None
) -> models.Product:
    uid = _require_user(backend)
    _validate_product(draft)
    record = draft.to_record()
    record["name"] = draft.name.strip()
    record["created_at"] = now or datetime.now()
    record["owner_id"] = uid
    row = await backend.insert("products", record)
    _logger.info(f"Created {draft.details.kind} product {row['id']}")
    return models.Product.from_record(row)


async def update_product_price(backend: DataAccess, pid: int, new_price: float) -> None:
    """Change the selling price for future invoices only."""
    uid = _require_user(backend)
    if new_price < 0:
        raise ValidationFailed("Selling price cannot be negative.")
    await backend.update("products", pid, {"selling_price": new_price}, owner_id=uid)


async def set_product_status(backend: DataAccess, pid: int, status: str) -> None:
    uid = _require_user(backend)
    if status not in models.PRODUCT_STATUSES:
        raise ValidationFailed(f"Unknown product status: {status!r}")
    await backend.update("products", pid, {"status": status}, owner_id=uid)


# ---------------------------
# Invoices
# ---------------------------


async def _hydrate_invoices(
    backend: DataAccess, uid: int, invoice_rows: List[Dict]
) -> List[models.Invoice]:
    """Attach items and their products, reading each table with explicit owner filters."""
    ids = [r["id"] for r in invoice_rows]
    item_rows = await backend.get(
        "invoice_items", Query(filters={"invoice_id": ids}, order_by="position")
    )
    product_ids = {r["product_id"] for r in item_rows if r["product_id"] is not None}
    product_rows = await backend.get(
        "products", Query(owner_id=uid, filters={"id": product_ids})
    )
    products = {r["id"]: models.Product.from_record(r) for r in product_rows}

    items_by_invoice: Dict[int, List[models.InvoiceItem]] = {i: [] for i in ids}
    for row in item_rows:
        items_by_invoice[row["invoice_id"]].append(
            models.InvoiceItem.from_record(row, products.get(row["product_id"]))
        )
    return [
        models.Invoice.from_record(r, tuple(items_by_invoice[r["id"]]))
        for r in invoice_rows
    ]


async def list_invoices(backend: DataAccess) -> List[models.Invoice]:
    """The current user's invoices with their items, newest first."""
    uid = _require_user(backend)
    rows = await backend.get(
        "invoices", Query(owner_id=uid, order_by="created_at", descending=True)
    )
    return await _hydrate_invoices(backend, uid, rows)


async def get_invoice(backend: DataAccess, iid: int) -> Optional[models.Invoice]:
    uid = _require_user(backend)
    rows = await backend.get("invoices", Query(owner_id=uid, filters={"id": iid}))
    if not rows:
        return None
    return (await _hydrate_invoices(backend, uid, rows))[0]


async def create_invoice(
    backend: DataAccess,
    customer: models.CustomerSnapshot,
    lines: Sequence[models.InvoiceLineDraft],
    now: Optional[datetime] = None,
    status: str = "Completed",
    payment_method: str = "Credit Card",
) -> models.Invoice:
    """
    Create an invoice from the picked products.

    Unit prices and contract windows are copied onto the items now, and the
    customer fields are copied onto the invoice; later edits to products or
    customers do not touch this invoice.
    """
    uid = _require_user(backend)
    _required(customer_name=customer.name)
    if not lines:
        raise ValidationFailed("An invoice needs at least one product.")
    if status not in models.INVOICE_STATUSES:
        raise ValidationFailed(f"Unknown invoice status: {status!r}")

    # status, kind and price come from the stored rows, not the form's copies
    rows = await backend.get(
        "products",
        Query(owner_id=uid, filters={"id": {line.product.id for line in lines}}),
    )
    current = {r["id"]: models.Product.from_record(r) for r in rows}
    picked = []
    for line in lines:
        product = current.get(line.product.id)
        if product is None:
            raise ValidationFailed(f"Unknown product: {line.product.name}")
        if product.status != "active":
            raise ValidationFailed(f"{product.name} is not active.")
        line_total(product.selling_price, line.quantity)
        picked.append(models.InvoiceLineDraft(product, line.quantity))
    lines = picked

    now = now or datetime.now()
    total = invoice_total((line.unit_price, line.quantity) for line in lines)
    existing = await backend.get("invoices", Query(owner_id=uid))
    number = _invoice_numbers.next(len(existing))

    invoice_row = await backend.insert(
        "invoices",
        {
            "number": number,
            "customer_name": customer.name.strip(),
            "customer_email": customer.email.strip(),
            "customer_phone": customer.phone.strip(),
            "customer_address": customer.address.strip(),
            "total": total,
            "status": status,
            "payment_method": payment_method,
            "created_at": now,
            "owner_id": uid,
        },
    )

    try:
        for position, line in enumerate(lines, start=1):
            start = end = None
            details = line.product.details
            if isinstance(details, models.SubscriptionDetails):
                start = now
                end = contract_end(now, details.contract_duration)
            await backend.insert(
                "invoice_items",
                {
                    "invoice_id": invoice_row["id"],
                    "product_id": line.product.id,
                    "quantity": line.quantity,
                    "unit_price": line.unit_price,
                    "position": position,
                    "contract_start": start,
                    "contract_end": end,
                },
            )
    except RemoteOperationFailed:
        # no half-written invoices: items cascade with the invoice row
        await backend.delete("invoices", invoice_row["id"], owner_id=uid)
        raise

    _logger.info(f"Created invoice {number} total={total}")
    return await get_invoice(backend, invoice_row["id"])


async def update_invoice_status(backend: DataAccess, iid: int, status: str) -> None:
    uid = _require_user(backend)
    if status not in models.INVOICE_STATUSES:
        raise ValidationFailed(f"Unknown invoice status: {status!r}")
    await backend.update("invoices", iid, {"status": status}, owner_id=uid)
    _logger.info(f"Invoice {iid} -> {status}")


async def delete_invoices(backend: DataAccess, ids: Iterable[int]) -> None:
    """Delete exactly the given invoices (and their items)."""
    uid = _require_user(backend)
    ids = list(ids)
    await backend.delete("invoices", ids, owner_id=uid)
    _logger.info(f"Deleted invoices {ids}")


# ---------------------------
# Calendar events
# ---------------------------


async def list_events(
    backend: DataAccess, now: Optional[datetime] = None
) -> List[models.Event]:
    """Events by start time, each with its status for ``now``."""
    uid = _require_user(backend)
    now = now or datetime.now()
    rows = await backend.get("events", Query(owner_id=uid, order_by="start_time"))
    events = [models.Event.from_record(r) for r in rows]
    return with_event_statuses(events, now)


async def create_event(
    backend: DataAccess,
    title: str,
    description: str,
    start: Optional[datetime],
    end: Optional[datetime],
    now: Optional[datetime] = None,
) -> models.Event:
    uid = _require_user(backend)
    _required(title=title)
    if start is None or end is None:
        raise ValidationFailed("Start and end time are required.")
    if end < start:
        raise ValidationFailed("An event cannot end before it starts.")
    row = await backend.insert(
        "events",
        {
            "title": title.strip(),
            "description": (description or "").strip(),
            "start_time": start,
            "end_time": end,
            "created_at": now or datetime.now(),
            "owner_id": uid,
        },
    )
    _logger.info(f"Created event {row['id']}")
    return models.Event.from_record(row)


async def delete_event(backend: DataAccess, eid: int) -> None:
    uid = _require_user(backend)
    await backend.delete("events", eid, owner_id=uid)


# ---------------------------
# Subscription notifications
# ---------------------------


async def list_subscription_watches(
    backend: DataAccess, now: Optional[datetime] = None
) -> List[models.SubscriptionWatch]:
    """
    Subscription lines of the current user's completed invoices, soonest
    contract end first, each classified against ``now``.

    Invoice ownership, invoice status and product kind are each checked by
    their own query, so a line is only dropped when one of those checks
    really fails.
    """
    uid = _require_user(backend)
    now = now or datetime.now()

    invoice_rows = await backend.get(
        "invoices", Query(owner_id=uid, filters={"status": "Completed"})
    )
    invoices = {r["id"]: r for r in invoice_rows}
    item_rows = await backend.get(
        "invoice_items",
        Query(
            filters={"invoice_id": list(invoices)},
            not_null=("contract_end",),
            order_by="contract_end",
        ),
    )
    product_rows = await backend.get(
        "products",
        Query(
            owner_id=uid,
            filters={
                "kind": "subscription",
                "id": {r["product_id"] for r in item_rows if r["product_id"] is not None},
            },
        ),
    )
    products = {r["id"]: r for r in product_rows}

    watches: List[models.SubscriptionWatch] = []
    for row in item_rows:
        product = products.get(row["product_id"])
        if product is None:
            continue
        end = models.parse_ts(row["contract_end"])
        days = days_remaining(now, end)
        watches.append(
            models.SubscriptionWatch(
                item_id=row["id"],
                invoice_number=invoices[row["invoice_id"]]["number"],
                customer_name=invoices[row["invoice_id"]]["customer_name"],
                product_name=product["name"],
                contract_start=models.parse_ts(row["contract_start"]),
                contract_end=end,
                days_remaining=days,
                status=classify_days(days),
            )
        )
    return watches


# ---------------------------
# Overview
# ---------------------------


async def dashboard_summary(
    backend: DataAccess, now: Optional[datetime] = None
) -> Dict[str, float]:
    """
    Headline numbers for the overview screen.
    Returns a dict with numeric values.
    """
    now = now or datetime.now()
    customers = await list_customers(backend)
    products = await list_products(backend)
    invoices = await list_invoices(backend)
    events = await list_events(backend, now)
    watches = await list_subscription_watches(backend, now)
    return {
        "customers": len(customers),
        "products": len(products),
        "active_products": sum(1 for p in products if p.status == "active"),
        "invoices": len(invoices),
        "revenue_total": total_by_status(invoices),
        "completed_total": total_by_status(invoices, "Completed"),
        "pending_total": total_by_status(invoices, "Pending"),
        "failed_total": total_by_status(invoices, "Failed"),
        "upcoming_events": sum(1 for e in events if e.status == "upcoming"),
        "ongoing_events": sum(1 for e in events if e.status == "ongoing"),
        "expiring_soon": sum(1 for w in watches if w.status == "expiring_soon"),
        "expired": sum(1 for w in watches if w.status == "expired"),
    }
