"""
Google Sheets Storage Implementation

Google Sheets is the default durable backend because:
1. Users can view and fix their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (fine for one household)
- No transactions: every write is a single-row upsert
- Limited query capabilities (we filter in Python)

Each record type lives in its own worksheet, one record per row, with a
header row naming the columns. Empty cells mean None.
"""

import json
from decimal import Decimal
from typing import Optional, Type
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from pydantic import BaseModel
from tenacity import retry, stop_after_attempt, wait_exponential

from nexus_finance.config import get_settings
from nexus_finance.models.audit import AuditEvent, AuditEventType, AuditSeverity
from nexus_finance.models.budget import (
    AppConfig,
    BudgetEntry,
    CategoryType,
    InstallmentPurchase,
    SavingsGoal,
)
from nexus_finance.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    EntryStoreInterface,
    StorageError,
)


# Column mappings per worksheet. The first column is always the row key.
ENTRY_COLUMNS = [
    "id",
    "month",
    "name",
    "amount",
    "category",
    "tag",
    "entry_date",
    "status",
    "payment_method",
    "card_name",
    "financing_plan",
    "installment_ref",
    "current_installment",
    "total_installments",
    "order",
    "deleted",
    "goal_id",
    "maturity_date",
    "original_amount",
    "currency",
    "exchange_rate_estimated",
    "exchange_rate_actual",
]

INSTALLMENT_COLUMNS = [
    "id",
    "name",
    "total_amount",
    "installments",
    "start_date",
    "category",
    "tag",
    "card_name",
]

GOAL_COLUMNS = [
    "id",
    "name",
    "target_amount",
    "current_amount",
    "deadline",
    "icon",
]

CATEGORY_BUDGET_COLUMNS = ["category", "amount"]

CONFIG_COLUMNS = ["currency", "user_name", "categories_json", "credit_cards_json"]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "month",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]

write_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


def _cell(value) -> str:
    """Serialize one JSON-mode value into a sheet cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def record_to_row(record: BaseModel, columns: list[str], **extra) -> list[str]:
    """Convert a model to a row following `columns`; extra values win."""
    data = record.model_dump(mode="json")
    data.update(extra)
    return [_cell(data.get(column)) for column in columns]


def row_to_record(row: list, columns: list[str], model: Type[BaseModel]) -> BaseModel:
    """Convert a row back to a model; empty cells are left to model defaults."""
    data = {
        column: value
        for column, value in zip(columns, row)
        if value != "" and column in model.model_fields
    }
    return model.model_validate(data)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @write_retry
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
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

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
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_sheet(self, title: str, columns: list[str], rows: int = 1000) -> gspread.Worksheet:
        """Get or create a worksheet with a header row."""
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


class _KeyedSheet:
    """Upsert/delete by first-column key on one worksheet."""

    def __init__(self, client: GoogleSheetsClient, title: str, columns: list[str]):
        self._client = client
        self._title = title
        self._columns = columns

    def sheet(self) -> gspread.Worksheet:
        return self._client.get_sheet(self._title, self._columns)

    def rows(self) -> list[list]:
        """All data rows (header excluded), skipping blank ones."""
        return [row for row in self.sheet().get_all_values()[1:] if row and row[0]]

    def upsert(self, key: str, row: list[str]) -> bool:
        sheet = self.sheet()
        all_rows = sheet.get_all_values()
        # Row 1 is the header
        for idx, existing in enumerate(all_rows[1:], start=2):
            if existing and existing[0] == key:
                sheet.batch_update([{"range": f"A{idx}", "values": [row]}])
                return True
        sheet.append_row(row, value_input_option="RAW")
        return True

    def delete(self, key: str) -> bool:
        sheet = self.sheet()
        all_rows = sheet.get_all_values()
        for idx, existing in enumerate(all_rows[1:], start=2):
            if existing and existing[0] == key:
                sheet.delete_rows(idx)
                return True
        return False


class GoogleSheetsEntryStore(EntryStoreInterface):
    """Google Sheets implementation of the entry store."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        settings = get_settings().google_sheets
        self._entries = _KeyedSheet(self._client, settings.entries_sheet_name, ENTRY_COLUMNS)
        self._installments = _KeyedSheet(
            self._client, settings.installments_sheet_name, INSTALLMENT_COLUMNS
        )
        self._goals = _KeyedSheet(self._client, settings.goals_sheet_name, GOAL_COLUMNS)
        self._category_budgets = _KeyedSheet(
            self._client, settings.category_budgets_sheet_name, CATEGORY_BUDGET_COLUMNS
        )
        self._config = _KeyedSheet(self._client, settings.config_sheet_name, CONFIG_COLUMNS)

    # -- Entries --------------------------------------------------------------

    async def list_months(self) -> list[str]:
        try:
            return sorted({row[1] for row in self._entries.rows() if len(row) > 1 and row[1]})
        except Exception as e:
            raise StorageError(f"Failed to list months: {e}")

    async def list_entries(self, month: Optional[str] = None) -> list[BudgetEntry]:
        try:
            return [
                row_to_record(row, ENTRY_COLUMNS, BudgetEntry)
                for row in self._entries.rows()
                if month is None or (len(row) > 1 and row[1] == month)
            ]
        except Exception as e:
            raise StorageError(f"Failed to list entries: {e}")

    @write_retry
    async def upsert_entry(self, month: str, entry: BudgetEntry) -> bool:
        """Save an entry row; rollup members are never persisted."""
        try:
            row = record_to_row(entry, ENTRY_COLUMNS, month=month)
            return self._entries.upsert(entry.id, row)
        except Exception as e:
            raise StorageError(f"Failed to save entry: {e}")

    @write_retry
    async def delete_entry(self, entry_id: str) -> bool:
        try:
            return self._entries.delete(entry_id)
        except Exception as e:
            raise StorageError(f"Failed to delete entry: {e}")

    # -- Installments ---------------------------------------------------------

    async def list_installments(self) -> list[InstallmentPurchase]:
        try:
            return [
                row_to_record(row, INSTALLMENT_COLUMNS, InstallmentPurchase)
                for row in self._installments.rows()
            ]
        except Exception as e:
            raise StorageError(f"Failed to list installments: {e}")

    @write_retry
    async def upsert_installment(self, purchase: InstallmentPurchase) -> bool:
        try:
            row = record_to_row(purchase, INSTALLMENT_COLUMNS)
            return self._installments.upsert(purchase.id, row)
        except Exception as e:
            raise StorageError(f"Failed to save installment: {e}")

    @write_retry
    async def delete_installment(self, purchase_id: str) -> bool:
        try:
            return self._installments.delete(purchase_id)
        except Exception as e:
            raise StorageError(f"Failed to delete installment: {e}")

    # -- Goals ----------------------------------------------------------------

    async def list_goals(self) -> list[SavingsGoal]:
        try:
            return [
                row_to_record(row, GOAL_COLUMNS, SavingsGoal)
                for row in self._goals.rows()
            ]
        except Exception as e:
            raise StorageError(f"Failed to list goals: {e}")

    @write_retry
    async def upsert_goal(self, goal: SavingsGoal) -> bool:
        try:
            return self._goals.upsert(goal.id, record_to_row(goal, GOAL_COLUMNS))
        except Exception as e:
            raise StorageError(f"Failed to save goal: {e}")

    @write_retry
    async def delete_goal(self, goal_id: str) -> bool:
        try:
            return self._goals.delete(goal_id)
        except Exception as e:
            raise StorageError(f"Failed to delete goal: {e}")

    # -- Category budgets and config -----------------------------------------

    async def list_category_budgets(self) -> dict[CategoryType, Decimal]:
        try:
            return {
                CategoryType(row[0]): Decimal(row[1])
                for row in self._category_budgets.rows()
                if len(row) > 1 and row[1]
            }
        except Exception as e:
            raise StorageError(f"Failed to list category budgets: {e}")

    @write_retry
    async def upsert_category_budget(
        self,
        category: CategoryType,
        amount: Decimal,
    ) -> bool:
        try:
            return self._category_budgets.upsert(category.value, [category.value, str(amount)])
        except Exception as e:
            raise StorageError(f"Failed to save category budget: {e}")

    async def get_config(self) -> Optional[AppConfig]:
        try:
            rows = self._config.rows()
        except Exception as e:
            raise StorageError(f"Failed to load config: {e}")

        if not rows:
            return None
        row = rows[0] + [""] * (len(CONFIG_COLUMNS) - len(rows[0]))
        return AppConfig(
            currency=row[0],
            user_name=row[1],
            categories=json.loads(row[2]) if row[2] else {},
            credit_cards=json.loads(row[3]) if row[3] else [],
        )

    @write_retry
    async def upsert_config(self, config: AppConfig) -> bool:
        """The config sheet holds a single data row; rewrite it in place."""
        try:
            sheet = self._config.sheet()
            row = [
                config.currency,
                config.user_name,
                json.dumps({k.value: v for k, v in config.categories.items()}),
                json.dumps(config.credit_cards),
            ]
            if len(sheet.get_all_values()) > 1:
                sheet.batch_update([{"range": "A2", "values": [row]}])
            else:
                sheet.append_row(row, value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to save config: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._title = get_settings().google_sheets.audit_sheet_name

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_sheet(self._title, AUDIT_COLUMNS, rows=5000)

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=safe_get(1),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            entity_type=safe_get(4) or None,
            entity_id=safe_get(5) or None,
            month=safe_get(6) or None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    @write_retry
    async def append_event(self, event: AuditEvent) -> bool:
        try:
            self._sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        try:
            rows = self._sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = [
            self._row_to_event(row)
            for row in rows
            if len(row) > 7 and row[7] == str(correlation_id)
        ]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        try:
            rows = self._sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = [self._row_to_event(row) for row in rows if row and row[0]]
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
