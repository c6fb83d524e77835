from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from decoflow.domain.errors import NotFoundError, ValidationError
from decoflow.domain.ids import new_id, now_iso, today_iso
from decoflow.domain.models import (
    AmountCount,
    CategoryTotal,
    Client,
    Decoration,
    Expense,
    FinanceSummary,
    Quotation,
    Rental,
    SavedReport,
    Transaction,
    TRANSACTION_TYPES,
)
from decoflow.domain.manifest import to_manifest
from decoflow.domain.payloads import ClientData, LineItem, parse_client_data, parse_line_items
from decoflow.repositories.blob_store import reference_key

log = logging.getLogger(__name__)

RENTAL_STATUSES = ("active", "returned")
OFFSET_KEYS = ("incomeOffset", "expenseOffset", "balanceOffset")


def _money(value, label: str) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{label} must be a number.") from exc
    if value < 0:
        raise ValidationError(f"{label} must be >= 0.")
    return value


def _items(items) -> tuple[LineItem, ...]:
    if not items:
        return ()
    if isinstance(items, tuple) and all(isinstance(i, LineItem) for i in items):
        return items
    if isinstance(items, list) and all(isinstance(i, LineItem) for i in items):
        return tuple(items)
    return parse_line_items(items)


class FinanceService:
    """Sales, rentals, decorations, expenses, quotations and clients."""

    def __init__(self, repo, blobs):
        self.repo = repo
        self.blobs = blobs

    # ---------- Clients ----------
    def upsert_client(self, data: ClientData) -> Client:
        if not data.name:
            raise ValidationError("Client name is required.")

        existing = None
        if data.document_id:
            existing = self.repo.get_client_by_document_id(data.document_id)
        if existing is None:
            existing = self.repo.get_client_by_name(data.name)

        now = now_iso()
        if existing is None:
            client = Client(
                id=new_id(),
                name=data.name,
                phone=data.phone,
                document_id=data.document_id,
                email=data.email,
                address=data.address,
                created_at=now,
                updated_at=now,
            )
            return self.repo.create_client(client)

        merged = replace(
            existing,
            name=data.name,
            phone=data.phone or existing.phone,
            document_id=data.document_id or existing.document_id,
            email=data.email or existing.email,
            address=data.address or existing.address,
            updated_at=now,
        )
        self.repo.update_client(merged)
        return merged

    def list_clients(self) -> list[Client]:
        return self.repo.list_clients()

    def search_clients(self, query: str) -> list[Client]:
        if not (query or "").strip():
            return self.repo.list_clients()
        return self.repo.search_clients(query)

    def deactivate_client(self, client_id: str) -> None:
        if not self.repo.deactivate_client(client_id, now_iso()):
            raise NotFoundError("Client not found.")

    def _client(self, client_data) -> tuple[Optional[ClientData], Optional[str]]:
        if client_data is None:
            return None, None
        if not isinstance(client_data, ClientData):
            client_data = parse_client_data(client_data)
        if client_data is None or not client_data.name:
            return client_data, None
        return client_data, self.upsert_client(client_data).id

    # ---------- Transactions ----------
    def _amounts(
        self, type_: str, unit_price, quantity, discount, items: tuple[LineItem, ...]
    ) -> tuple[float, int, float, float]:
        unit_price = _money(unit_price, "Unit price")
        discount = _money(discount or 0, "Discount")
        quantity = int(quantity or 1)
        if quantity <= 0:
            raise ValidationError("Quantity must be > 0.")
        # decoration items are a checklist; the decoration price is the total
        if type_ == "decoration":
            gross = unit_price
        elif items:
            gross = sum(i.total for i in items)
        else:
            gross = quantity * unit_price
        full = round(gross - discount, 2)
        if full < 0:
            raise ValidationError("Discount cannot exceed the total.")
        return unit_price, quantity, discount, full

    def record_transaction(
        self,
        type_: str,
        product_name: str,
        unit_price: float,
        quantity: int = 1,
        discount: float = 0.0,
        date: Optional[str] = None,
        product_id: Optional[str] = None,
        customer_name: Optional[str] = None,
        client_data=None,
        notes: Optional[str] = None,
        items=None,
        delivery_date: Optional[str] = None,
        is_installment: bool = False,
        amount_paid: Optional[float] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        deposit: float = 0.0,
    ) -> Transaction:
        if type_ not in TRANSACTION_TYPES:
            raise ValidationError(f"Unknown transaction type: {type_!r}")
        line_items = _items(items)
        product_name = (product_name or "").strip() or ", ".join(i.product_name for i in line_items if i.product_name)
        if not product_name:
            raise ValidationError("Product name is required.")
        unit_price, quantity, discount, full = self._amounts(type_, unit_price, quantity, discount, line_items)

        if is_installment:
            paid = _money(amount_paid or 0, "Amount paid")
            if paid > full:
                raise ValidationError("Amount paid cannot exceed the total.")
        else:
            paid = full

        client_data, client_id = self._client(client_data)
        now = now_iso()
        date = date or today_iso()
        t = Transaction(
            id=new_id(),
            type=type_,
            product_id=product_id,
            product_name=product_name,
            quantity=quantity,
            unit_price=unit_price,
            discount=discount,
            total_amount=paid,
            customer_name=customer_name or (client_data.name if client_data else None),
            client_data=client_data,
            client_id=client_id,
            notes=notes,
            date=date,
            delivery_date=delivery_date,
            items=line_items,
            is_installment=bool(is_installment) and paid < full,
            total_price=full,
            amount_paid=paid,
            created_at=now,
            updated_at=now,
        )
        side = self._side_record(t, start_date or date, end_date, _money(deposit or 0, "Deposit"), line_items)
        self.repo.create_transaction_with_side_record(t, side)
        log.info("transaction_recorded id=%s type=%s total=%.2f", t.id, t.type, t.total_amount)
        return t

    def _side_record(self, t: Transaction, start_date: str, end_date, deposit: float, items):
        if t.type == "rental":
            return Rental(
                id=new_id(),
                transaction_id=t.id,
                status="active",
                start_date=start_date,
                end_date=end_date,
                deposit=deposit,
                created_at=t.created_at,
                updated_at=t.created_at,
            )
        if t.type == "decoration":
            return Decoration(
                id=new_id(),
                transaction_id=t.id,
                status="active",
                start_date=start_date,
                end_date=end_date,
                deposit=deposit,
                items=items,
                created_at=t.created_at,
                updated_at=t.created_at,
            )
        return None

    def record_sale(self, product_name: str, unit_price: float, **kwargs) -> Transaction:
        return self.record_transaction("sale", product_name, unit_price, **kwargs)

    def record_rental(self, product_name: str, unit_price: float, **kwargs) -> Transaction:
        return self.record_transaction("rental", product_name, unit_price, **kwargs)

    def record_decoration(self, product_name: str, unit_price: float, **kwargs) -> Transaction:
        return self.record_transaction("decoration", product_name, unit_price, **kwargs)

    def get_transaction(self, transaction_id: str) -> Transaction:
        t = self.repo.get_transaction(transaction_id)
        if not t:
            raise NotFoundError("Transaction not found.")
        return t

    def list_transactions(
        self, type_: Optional[str] = None, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> list[Transaction]:
        if start_date and end_date:
            return self.repo.list_transactions_between(start_date, end_date, type_)
        return self.repo.list_transactions(type_)

    def register_payment(self, transaction_id: str, amount: float) -> Transaction:
        t = self.get_transaction(transaction_id)
        amount = _money(amount, "Payment")
        if amount == 0:
            raise ValidationError("Payment must be > 0.")
        if not t.is_installment:
            raise ValidationError("This transaction is already fully paid.")
        if amount > t.balance_due + 1e-9:
            raise ValidationError(f"Payment exceeds the balance due ({t.balance_due:.2f}).")

        paid = round(t.amount_paid + amount, 2)
        full = t.total_price if t.total_price is not None else t.total_amount
        updated = replace(
            t,
            amount_paid=paid,
            total_amount=paid,
            is_installment=paid < full,
            updated_at=now_iso(),
        )
        self.repo.update_transaction(updated)
        log.info("installment_paid id=%s amount=%.2f balance=%.2f", t.id, amount, updated.balance_due)
        return updated

    def update_rental_status(self, transaction_id: str, status: str) -> None:
        if status not in RENTAL_STATUSES:
            raise ValidationError(f"Unknown rental status: {status!r}")
        now = now_iso()
        returned_at = now if status == "returned" else None
        if not self.repo.update_rental_status(transaction_id, status, returned_at, now):
            raise NotFoundError("Rental not found.")

    def list_active_rentals(self) -> list[tuple[Transaction, Rental]]:
        return self.repo.list_active_rentals()

    def delete_transaction(self, transaction_id: str) -> None:
        if not self.repo.delete_transaction(transaction_id):
            raise NotFoundError("Transaction not found.")

    def delete_transactions_by_type(self, type_: str) -> int:
        if type_ not in TRANSACTION_TYPES:
            raise ValidationError(f"Unknown transaction type: {type_!r}")
        return self.repo.delete_transactions_by_type(type_)

    # ---------- Expenses ----------
    def add_expense(
        self,
        category: str,
        description: str,
        amount: float,
        date: Optional[str] = None,
        receipt_image: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Expense:
        category = (category or "").strip()
        description = (description or "").strip()
        if not category or not description:
            raise ValidationError("Category and description are required.")
        now = now_iso()
        expense = Expense(
            id=new_id(),
            category=category,
            description=description,
            amount=_money(amount, "Amount"),
            date=date or today_iso(),
            receipt_image=self.blobs.adopt(receipt_image),
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        return self.repo.create_expense(expense)

    def get_expense(self, expense_id: str) -> Expense:
        e = self.repo.get_expense(expense_id)
        if not e:
            raise NotFoundError("Expense not found.")
        return e

    def update_expense(
        self,
        expense_id: str,
        category: str,
        description: str,
        amount: float,
        date: str,
        receipt_image: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Expense:
        current = self.get_expense(expense_id)
        updated = replace(
            current,
            category=(category or "").strip() or current.category,
            description=(description or "").strip() or current.description,
            amount=_money(amount, "Amount"),
            date=date,
            receipt_image=self.blobs.adopt(receipt_image, owned=[current.receipt_image]),
            notes=notes,
            updated_at=now_iso(),
        )
        self.repo.update_expense(updated)
        if current.receipt_image and reference_key(current.receipt_image) != reference_key(updated.receipt_image):
            self.blobs.delete_image(current.receipt_image)
        return updated

    def delete_expense(self, expense_id: str) -> None:
        expense = self.get_expense(expense_id)
        if expense.receipt_image:
            self.blobs.delete_image(expense.receipt_image)
        self.repo.delete_expense(expense_id)

    def list_expenses(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> list[Expense]:
        if start_date and end_date:
            return self.repo.list_expenses_between(start_date, end_date)
        return self.repo.list_expenses()

    def expenses_by_category(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> list[CategoryTotal]:
        return self.repo.expenses_by_category(start_date, end_date)

    # ---------- Quotations ----------
    def create_quotation(
        self,
        type_: str,
        product_name: str,
        unit_price: float,
        quantity: int = 1,
        discount: float = 0.0,
        date: Optional[str] = None,
        product_id: Optional[str] = None,
        customer_name: Optional[str] = None,
        client_data=None,
        notes: Optional[str] = None,
        items=None,
        delivery_date: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        deposit: float = 0.0,
    ) -> Quotation:
        if type_ not in TRANSACTION_TYPES:
            raise ValidationError(f"Unknown quotation type: {type_!r}")
        line_items = _items(items)
        product_name = (product_name or "").strip() or ", ".join(i.product_name for i in line_items if i.product_name)
        if not product_name:
            raise ValidationError("Product name is required.")
        unit_price, quantity, discount, full = self._amounts(type_, unit_price, quantity, discount, line_items)
        client_data, client_id = self._client(client_data)

        now = now_iso()
        q = Quotation(
            id=new_id(),
            quotation_number=self.repo.next_quotation_number(),
            type=type_,
            product_id=product_id,
            product_name=product_name,
            quantity=quantity,
            unit_price=unit_price,
            discount=discount,
            total_amount=full,
            customer_name=customer_name or (client_data.name if client_data else None),
            client_data=client_data,
            client_id=client_id,
            notes=notes,
            date=date or today_iso(),
            delivery_date=delivery_date,
            start_date=start_date,
            end_date=end_date,
            deposit=_money(deposit or 0, "Deposit"),
            items=line_items,
            status="pending",
            created_at=now,
            updated_at=now,
        )
        return self.repo.create_quotation(q)

    def get_quotation(self, quotation_id: str) -> Quotation:
        q = self.repo.get_quotation(quotation_id)
        if not q:
            raise NotFoundError("Quotation not found.")
        return q

    def list_quotations(self, type_: Optional[str] = None, search: Optional[str] = None) -> list[Quotation]:
        return self.repo.list_quotations(type_, search)

    def delete_quotation(self, quotation_id: str) -> None:
        if not self.repo.delete_quotation(quotation_id):
            raise NotFoundError("Quotation not found.")

    def convert_quotation(
        self, quotation_id: str, is_installment: bool = False, amount_paid: Optional[float] = None
    ) -> Transaction:
        q = self.get_quotation(quotation_id)
        if q.status == "converted":
            raise ValidationError("Quotation was already converted.")

        full = q.total_amount
        if is_installment:
            paid = _money(amount_paid or 0, "Amount paid")
            if paid > full:
                raise ValidationError("Amount paid cannot exceed the total.")
        else:
            paid = full

        now = now_iso()
        today = today_iso()
        t = Transaction(
            id=new_id(),
            type=q.type,
            product_id=q.product_id,
            product_name=q.product_name,
            quantity=q.quantity,
            unit_price=q.unit_price,
            discount=q.discount,
            total_amount=paid,
            customer_name=q.customer_name,
            client_data=q.client_data,
            client_id=q.client_id,
            notes=f"Convertido desde Cotización #{q.quotation_number}. {q.notes or ''}".strip(),
            date=today,
            delivery_date=q.delivery_date,
            items=q.items,
            is_installment=bool(is_installment) and paid < full,
            total_price=full,
            amount_paid=paid,
            created_at=now,
            updated_at=now,
        )
        side = self._side_record(t, q.start_date or today, q.end_date, q.deposit, q.items)
        if not self.repo.convert_quotation(q.id, t, side, now):
            raise ValidationError("Quotation was already converted.")
        log.info("quotation_converted id=%s number=%s transaction=%s", q.id, q.quotation_number, t.id)
        return t

    # ---------- Summary ----------
    def _offset(self, settings: dict, key: str) -> float:
        try:
            return float(settings.get(key) or 0)
        except (TypeError, ValueError):
            log.warning("finance_offset_unreadable key=%s value=%r", key, settings.get(key))
            return 0.0

    def summary(self, start_date: Optional[str] = None, end_date: Optional[str] = None) -> FinanceSummary:
        by_type = self.repo.income_totals_by_type(start_date, end_date)
        expenses = self.repo.expense_totals(start_date, end_date)
        raw_income = sum(v.total for v in by_type.values())

        if start_date or end_date:
            return FinanceSummary(
                sales=by_type["sale"],
                rentals=by_type["rental"],
                decorations=by_type["decoration"],
                expenses=expenses,
                total_income=raw_income,
                balance=raw_income - expenses.total,
            )

        # counters reset by the user apply only to the all-time view
        settings = self.repo.get_settings()
        income = max(0.0, raw_income - self._offset(settings, "incomeOffset"))
        spent = max(0.0, expenses.total - self._offset(settings, "expenseOffset"))
        return FinanceSummary(
            sales=by_type["sale"],
            rentals=by_type["rental"],
            decorations=by_type["decoration"],
            expenses=AmountCount(total=spent, count=expenses.count),
            total_income=income,
            balance=income - spent - self._offset(settings, "balanceOffset"),
        )

    def reset_finance_counters(self) -> None:
        by_type = self.repo.income_totals_by_type()
        expenses = self.repo.expense_totals()
        self.repo.save_setting("incomeOffset", sum(v.total for v in by_type.values()))
        self.repo.save_setting("expenseOffset", expenses.total)
        self.repo.save_setting("balanceOffset", 0)
        log.info("finance_counters_reset")

    def clear_finance_data(self) -> None:
        for type_ in TRANSACTION_TYPES:
            self.repo.delete_transactions_by_type(type_)
        for e in self.repo.list_expenses():
            self.delete_expense(e.id)
        for q in self.repo.list_quotations():
            self.repo.delete_quotation(q.id)
        for key in OFFSET_KEYS:
            self.repo.save_setting(key, 0)
        log.warning("finance_data_cleared")

    # ---------- Saved reports ----------
    def save_report(
        self,
        start_date: str,
        end_date: str,
        name: Optional[str] = None,
        period_type: Optional[str] = None,
        filters: Optional[dict] = None,
    ) -> SavedReport:
        if start_date > end_date:
            raise ValidationError("Start date must be before end date.")
        s = self.summary(start_date, end_date)
        report = SavedReport(
            id=new_id(),
            name=name or f"Reporte {start_date} - {end_date}",
            period_type=period_type,
            start_date=start_date,
            end_date=end_date,
            filters=filters,
            summary={
                "sales": {"total": s.sales.total, "count": s.sales.count},
                "rentals": {"total": s.rentals.total, "count": s.rentals.count},
                "decorations": {"total": s.decorations.total, "count": s.decorations.count},
                "expenses": {"total": s.expenses.total, "count": s.expenses.count},
                "totalIncome": s.total_income,
                "balance": s.balance,
            },
            expenses_by_category=[
                {"category": c.category, "total": c.total, "count": c.count}
                for c in self.expenses_by_category(start_date, end_date)
            ],
            transactions=[to_manifest(t) for t in self.repo.list_transactions_between(start_date, end_date)],
            created_at=now_iso(),
        )
        return self.repo.save_report(report)

    def list_saved_reports(self) -> list[SavedReport]:
        return self.repo.list_saved_reports()

    def rename_report(self, report_id: str, name: str) -> None:
        if not (name or "").strip():
            raise ValidationError("Report name is required.")
        if not self.repo.rename_report(report_id, name.strip()):
            raise NotFoundError("Report not found.")

    def delete_report(self, report_id: str) -> None:
        if not self.repo.delete_report(report_id):
            raise NotFoundError("Report not found.")
