from __future__ import annotations

from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from decoflow.domain.errors import ValidationError
from decoflow.domain.models import CategoryTotal, FinanceSummary

TYPE_LABELS = {"sale": "Venta", "rental": "Alquiler", "decoration": "Decoración"}


class ReportingService:
    def __init__(self, repo, finance):
        self.repo = repo
        self.finance = finance

    def finance_summary(self, start_iso: Optional[str] = None, end_iso: Optional[str] = None) -> FinanceSummary:
        return self.finance.summary(start_iso, end_iso)

    def expenses_by_category(self, start_iso: Optional[str] = None, end_iso: Optional[str] = None) -> list[CategoryTotal]:
        return self.repo.expenses_by_category(start_iso, end_iso)

    def export_finance_report_excel(self, path: str, start_iso: str, end_iso: str) -> None:
        if start_iso > end_iso:
            raise ValidationError("Start date must be before end date.")
        wb = Workbook()

        def money(cell):
            cell.number_format = "#,##0.00"

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, start_row: int, start_col: int, end_row: int, end_col: int):
            ref = f"{get_column_letter(start_col)}{start_row}:{get_column_letter(end_col)}{end_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        summary = self.finance_summary(start_iso, end_iso)
        categories = self.expenses_by_category(start_iso, end_iso)
        transactions = self.repo.list_transactions_between(start_iso, end_iso)
        expenses = self.repo.list_expenses_between(start_iso, end_iso)

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = "Summary"
        ws["A1"].font = Font(bold=True, size=14)

        ws["A3"] = "Window"
        ws["B3"] = f"{start_iso}  ->  {end_iso}"

        rows = [
            ("Sales count", summary.sales.count, "int"),
            ("Sales total", summary.sales.total, "money"),
            ("Rentals count", summary.rentals.count, "int"),
            ("Rentals total", summary.rentals.total, "money"),
            ("Decorations count", summary.decorations.count, "int"),
            ("Decorations total", summary.decorations.total, "money"),
            ("Total income", summary.total_income, "money"),
            ("Expenses", summary.expenses.total, "money"),
            ("Balance", summary.balance, "money"),
        ]
        start_row = 5
        for i, (label, val, kind) in enumerate(rows):
            r = start_row + i
            ws[f"A{r}"] = label
            ws[f"B{r}"] = val
            if kind == "money":
                money(ws[f"B{r}"])

        r = start_row + len(rows) + 1
        ws[f"A{r}"] = "Expenses by category"
        ws[f"A{r}"].font = Font(bold=True)
        for c in categories:
            r += 1
            ws[f"A{r}"] = c.category
            ws[f"B{r}"] = c.total
            money(ws[f"B{r}"])
        set_widths(ws, {"A": 28, "B": 34})

        # -------- 2) Transactions --------
        ws2 = wb.create_sheet("Transactions")
        ws2.append([
            "Date", "Type", "Product", "Customer",
            "Qty", "Unit Price", "Discount", "Total", "Paid", "Balance due", "Notes"
        ])
        bold_row(ws2, 1)

        out_row = 2
        for t in transactions:
            ws2.append([
                t.date, TYPE_LABELS.get(t.type, t.type), t.product_name, t.customer_name or "",
                int(t.quantity), float(t.unit_price), float(t.discount), float(t.total_amount),
                float(t.amount_paid), float(t.balance_due), t.notes or "",
            ])
            for col in "FGHIJ":
                money(ws2[f"{col}{out_row}"])
            out_row += 1

        ws2.freeze_panes = "A2"
        set_widths(ws2, {
            "A": 12, "B": 12, "C": 34, "D": 24,
            "E": 6, "F": 14, "G": 12, "H": 14, "I": 14, "J": 14, "K": 30
        })
        if ws2.max_row >= 2:
            add_table(ws2, "TransactionsDetail", 1, 1, ws2.max_row, 11)

        # -------- 3) Expenses --------
        ws3 = wb.create_sheet("Expenses")
        ws3.append(["Date", "Category", "Description", "Amount", "Notes"])
        bold_row(ws3, 1)

        out_row = 2
        for e in expenses:
            ws3.append([e.date, e.category, e.description, float(e.amount), e.notes or ""])
            money(ws3[f"D{out_row}"])
            out_row += 1

        ws3.freeze_panes = "A2"
        set_widths(ws3, {"A": 12, "B": 18, "C": 34, "D": 14, "E": 30})
        if ws3.max_row >= 2:
            add_table(ws3, "ExpensesDetail", 1, 1, ws3.max_row, 5)

        wb.save(path)
