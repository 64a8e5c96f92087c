"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is used as the household's durable ledger because:
1. Both participants can look at the raw records directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (a household ledger is tiny)
- No transactions and no unique indexes, so the (template, month, year)
  check is done by reading before appending
- Limited query capabilities (we filter in Python)

The implementation follows the abstract interface, so we can swap
to PostgreSQL/SQLite later without changing business logic.
"""

import json
from datetime import datetime
from typing import Any, Optional, TypeVar
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential

from home_ledger.config import get_settings
from home_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from home_ledger.models.ledger import (
    ApprovalStatus,
    Category,
    Expense,
    Payment,
    RecurringExpense,
    User,
)
from home_ledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    LedgerRepository,
    NotFoundError,
    StorageConnectionError,
    StorageError,
)


ModelT = TypeVar("ModelT", bound=BaseModel)

# Column order of each worksheet follows the model's field order
USER_COLUMNS = list(User.model_fields)
CATEGORY_COLUMNS = list(Category.model_fields)
EXPENSE_COLUMNS = list(Expense.model_fields)
TEMPLATE_COLUMNS = list(RecurringExpense.model_fields)
PAYMENT_COLUMNS = list(Payment.model_fields)

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "actor_id",
    "description",
    "details_json",
    "error_code",
    "error_message",
]


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise StorageConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise StorageConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_sheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get a worksheet, creating it with a header row on first use."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_users_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.users_sheet_name, USER_COLUMNS, rows=100)

    def get_categories_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.categories_sheet_name, CATEGORY_COLUMNS, rows=100)

    def get_expenses_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.expenses_sheet_name, EXPENSE_COLUMNS)

    def get_templates_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.templates_sheet_name, TEMPLATE_COLUMNS, rows=200)

    def get_payments_sheet(self) -> gspread.Worksheet:
        return self.get_sheet(self._settings.payments_sheet_name, PAYMENT_COLUMNS)

    def get_audit_sheet(self) -> gspread.Worksheet:
        # More rows for audit log
        return self.get_sheet(self._settings.audit_sheet_name, AUDIT_COLUMNS, rows=5000)


def model_to_row(model: BaseModel, columns: list[str]) -> list[str]:
    """Serialize a model to cells; None becomes an empty cell."""
    data = model.model_dump(mode="json")
    row = []
    for column in columns:
        value = data.get(column)
        if value is None:
            row.append("")
        elif isinstance(value, bool):
            row.append("true" if value else "false")
        else:
            row.append(str(value))
    return row


def row_to_model(model_cls: type[ModelT], row: list[str], columns: list[str]) -> ModelT:
    """Parse a row back through the model; empty cells become None."""
    data = {}
    for index, column in enumerate(columns):
        cell = row[index] if index < len(row) else ""
        if cell != "":
            data[column] = cell
    return model_cls.model_validate(data)


class GoogleSheetsLedgerRepository(LedgerRepository):
    """
    Google Sheets implementation of the ledger repository.

    Each entity type lives in its own worksheet, one record per row,
    with the id in the first column.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    # -- Generic row helpers --------------------------------------------------

    def _load_all(
        self,
        sheet: gspread.Worksheet,
        model_cls: type[ModelT],
        columns: list[str],
    ) -> list[ModelT]:
        records = []
        for row in sheet.get_all_values()[1:]:  # Skip header
            if not row or not row[0]:
                continue
            records.append(row_to_model(model_cls, row, columns))
        return records

    def _find_row(self, sheet: gspread.Worksheet, entity_id: UUID) -> Optional[tuple[int, list[str]]]:
        # Row 1 is the header
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if row and row[0] == str(entity_id):
                return idx, row
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append(self, sheet: gspread.Worksheet, model: BaseModel, columns: list[str]) -> None:
        sheet.append_row(model_to_row(model, columns), value_input_option="RAW")

    def _update(
        self,
        sheet: gspread.Worksheet,
        model_cls: type[ModelT],
        columns: list[str],
        entity_id: UUID,
        fields: dict[str, Any],
    ) -> ModelT:
        found = self._find_row(sheet, entity_id)
        if found is None:
            raise NotFoundError(f"{model_cls.__name__} not found: {entity_id}")
        idx, row = found
        current = row_to_model(model_cls, row, columns)
        updated = model_cls.model_validate({**current.model_dump(), **fields})
        sheet.update(
            range_name=f"A{idx}",
            values=[model_to_row(updated, columns)],
            value_input_option="RAW",
        )
        return updated

    def _delete(self, sheet: gspread.Worksheet, entity_id: UUID, kind: str) -> bool:
        found = self._find_row(sheet, entity_id)
        if found is None:
            raise NotFoundError(f"{kind} not found: {entity_id}")
        sheet.delete_rows(found[0])
        return True

    def _get(
        self,
        sheet: gspread.Worksheet,
        model_cls: type[ModelT],
        columns: list[str],
        entity_id: UUID,
    ) -> Optional[ModelT]:
        found = self._find_row(sheet, entity_id)
        return row_to_model(model_cls, found[1], columns) if found else None

    # -- Users and categories -------------------------------------------------

    async def find_users(self, is_admin: Optional[bool] = None) -> list[User]:
        try:
            users = self._load_all(self._client.get_users_sheet(), User, USER_COLUMNS)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list users: {e}")
        return [u for u in users if is_admin is None or u.is_admin == is_admin]

    async def get_user(self, user_id: UUID) -> Optional[User]:
        try:
            return self._get(self._client.get_users_sheet(), User, USER_COLUMNS, user_id)
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get user: {e}")

    async def create_user(self, user: User) -> User:
        try:
            self._append(self._client.get_users_sheet(), user, USER_COLUMNS)
            return user
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save user: {e}")

    async def find_categories(self) -> list[Category]:
        try:
            return self._load_all(
                self._client.get_categories_sheet(), Category, CATEGORY_COLUMNS
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list categories: {e}")

    async def get_category(self, category_id: UUID) -> Optional[Category]:
        try:
            return self._get(
                self._client.get_categories_sheet(), Category, CATEGORY_COLUMNS, category_id
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get category: {e}")

    async def create_category(self, category: Category) -> Category:
        try:
            self._append(self._client.get_categories_sheet(), category, CATEGORY_COLUMNS)
            return category
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save category: {e}")

    # -- Expenses -------------------------------------------------------------

    async def find_expenses(
        self,
        month: int,
        year: int,
        status: Optional[ApprovalStatus] = None,
        is_shared: Optional[bool] = None,
    ) -> list[Expense]:
        try:
            expenses = self._load_all(
                self._client.get_expenses_sheet(), Expense, EXPENSE_COLUMNS
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list expenses: {e}")

        matching = [
            e for e in expenses
            if e.expense_month == month
            and e.expense_year == year
            and (status is None or e.status == status)
            and (is_shared is None or e.is_shared == is_shared)
        ]
        matching.sort(key=lambda e: (e.expense_date, e.created_at), reverse=True)
        return matching

    async def get_expense(self, expense_id: UUID) -> Optional[Expense]:
        try:
            return self._get(
                self._client.get_expenses_sheet(), Expense, EXPENSE_COLUMNS, expense_id
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get expense: {e}")

    async def create_expense(self, expense: Expense) -> Expense:
        if expense.recurring_expense_id is not None:
            existing = await self.count_expenses_for_template_and_month(
                expense.recurring_expense_id,
                expense.expense_month,
                expense.expense_year,
            )
            if existing:
                raise DuplicateError(
                    f"Template {expense.recurring_expense_id} already has an expense "
                    f"for {expense.expense_month:02d}/{expense.expense_year}"
                )
        try:
            self._append(self._client.get_expenses_sheet(), expense, EXPENSE_COLUMNS)
            return expense
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save expense: {e}")

    async def update_expense_fields(
        self,
        expense_id: UUID,
        fields: dict[str, Any],
    ) -> Expense:
        try:
            return self._update(
                self._client.get_expenses_sheet(), Expense, EXPENSE_COLUMNS, expense_id, fields
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update expense: {e}")

    async def delete_expense(self, expense_id: UUID) -> bool:
        try:
            return self._delete(self._client.get_expenses_sheet(), expense_id, "Expense")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete expense: {e}")

    async def count_expenses_for_template_and_month(
        self,
        template_id: UUID,
        month: int,
        year: int,
    ) -> int:
        expenses = await self.find_expenses(month, year)
        return sum(1 for e in expenses if e.recurring_expense_id == template_id)

    # -- Recurring templates --------------------------------------------------

    async def find_templates(
        self,
        is_active: Optional[bool] = None,
        status: Optional[ApprovalStatus] = None,
    ) -> list[RecurringExpense]:
        try:
            templates = self._load_all(
                self._client.get_templates_sheet(), RecurringExpense, TEMPLATE_COLUMNS
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list templates: {e}")

        matching = [
            t for t in templates
            if (is_active is None or t.is_active == is_active)
            and (status is None or t.status == status)
        ]
        matching.sort(key=lambda t: t.created_at, reverse=True)
        return matching

    async def get_template(self, template_id: UUID) -> Optional[RecurringExpense]:
        try:
            return self._get(
                self._client.get_templates_sheet(), RecurringExpense, TEMPLATE_COLUMNS, template_id
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get template: {e}")

    async def create_template(self, template: RecurringExpense) -> RecurringExpense:
        try:
            self._append(self._client.get_templates_sheet(), template, TEMPLATE_COLUMNS)
            return template
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save template: {e}")

    async def update_template_fields(
        self,
        template_id: UUID,
        fields: dict[str, Any],
    ) -> RecurringExpense:
        try:
            return self._update(
                self._client.get_templates_sheet(),
                RecurringExpense,
                TEMPLATE_COLUMNS,
                template_id,
                fields,
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update template: {e}")

    # -- Payments -------------------------------------------------------------

    async def find_payments(self, month: int, year: int) -> list[Payment]:
        try:
            payments = self._load_all(
                self._client.get_payments_sheet(), Payment, PAYMENT_COLUMNS
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to list payments: {e}")

        matching = [p for p in payments if p.month == month and p.year == year]
        matching.sort(key=lambda p: p.created_at, reverse=True)
        return matching

    async def get_payment(self, payment_id: UUID) -> Optional[Payment]:
        try:
            return self._get(
                self._client.get_payments_sheet(), Payment, PAYMENT_COLUMNS, payment_id
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to get payment: {e}")

    async def create_payment(self, payment: Payment) -> Payment:
        try:
            self._append(self._client.get_payments_sheet(), payment, PAYMENT_COLUMNS)
            return payment
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to save payment: {e}")

    async def delete_payment(self, payment_id: UUID) -> bool:
        try:
            return self._delete(self._client.get_payments_sheet(), payment_id, "Payment")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to delete payment: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=UUID(safe_get(5)) if safe_get(5) else None,
            actor_id=UUID(safe_get(6)) if safe_get(6) else None,
            description=safe_get(7),
            details=json.loads(safe_get(8)) if safe_get(8) else {},
            error_code=safe_get(9) or None,
            error_message=safe_get(10) or None,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> list[AuditEvent]:
        """Get events by entity."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]

            events = [
                self._row_to_event(row)
                for row in all_rows
                if row
                and len(row) > 5
                and row[4] == entity_type
                and row[5] == str(entity_id)
            ]
            events.sort(key=lambda e: e.timestamp)
            return events
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Get recent events."""
        try:
            sheet = self._client.get_audit_sheet()
            all_rows = sheet.get_all_values()[1:]

            events = [self._row_to_event(row) for row in all_rows if row and row[0]]

            # Sort newest first
            events.sort(key=lambda e: e.timestamp, reverse=True)
            return events[:limit]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
