"""
Data Access Façade for Money Manager

This module is the single entry point the rest of the client uses for:
1. Authentication (login, register, logout, profile update)
2. Incomes, expenses and categories (list, create, update, delete)
3. Filtering and the dashboard aggregate

Every operation follows the same flow:
    validate locally -> ModeArbiter -> (RemoteClient -> ResponseNormalizer)
                                    or (LocalStore)

DESIGN DECISION: Each operation is written as a pair of thunks, one per
store. The arbiter picks which one runs; the façade never inspects the mode
itself. Local thunks are plain synchronous read-modify-write sequences
wrapped in a coroutine, so nothing can interleave between reading a
collection and writing it back.
"""

import asyncio
import time
from typing import Any, Iterable, Optional, Union

import structlog

from money_manager.audit import AuditLogger
from money_manager.config import Settings, get_settings
from money_manager.models.finance import (
    Category,
    CategoryDraft,
    CategoryUpdate,
    DashboardData,
    Transaction,
    TransactionDraft,
    TransactionFilter,
    TransactionType,
    TransactionUpdate,
    UserSummary,
    palette_color,
)
from money_manager.models.session import Session
from money_manager.services.arbiter import ModeArbiter
from money_manager.services.remote import (
    InvalidServerResponse,
    RemoteClient,
    ResponseNormalizer,
)
from money_manager.services.session import SessionState
from money_manager.services.storage import (
    JsonFileKeyValueStore,
    KeyValueStore,
    LocalStore,
)
from money_manager.validation import InputValidator


logger = structlog.get_logger(__name__)

CategoryRef = Union[int, str]


def _newest_first(transactions: Iterable[Transaction]) -> list[Transaction]:
    return sorted(transactions, key=lambda t: t.date, reverse=True)


class DataAccessFacade:
    """
    Public async surface over both stores.

    Holds a category id -> name map refreshed by every category listing, so
    that transactions the remote store returns with only a ``categoryId``
    can be shown with their category name.
    """

    def __init__(
        self,
        session: SessionState,
        remote: RemoteClient,
        local: LocalStore,
        arbiter: Optional[ModeArbiter] = None,
        normalizer: Optional[ResponseNormalizer] = None,
        validator: Optional[InputValidator] = None,
    ):
        self._session = session
        self._remote = remote
        self._local = local
        self._arbiter = arbiter or ModeArbiter(session)
        self._normalizer = normalizer or ResponseNormalizer()
        self._validator = validator or InputValidator()
        self._category_names: dict[str, str] = {}

    @property
    def session(self) -> Session:
        return self._session.current()

    @property
    def arbiter(self) -> ModeArbiter:
        return self._arbiter

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    async def login(self, email: str, password: str) -> Session:
        """
        Sign in, remotely when the server is reachable, offline otherwise.

        Raises:
            ValidationError: If a field is empty
            InvalidServerResponse: If the server answered without a token
            InvalidCredentials: If offline and no local account matches
            Rejected / Unauthorized: If the server refused the credentials
        """
        self._validator.validate_credentials(email, password)
        email = email.strip()
        fallback_user = {"email": email, "username": email.split("@")[0]}

        async def remote() -> Session:
            raw = await self._remote.call(
                "POST", "/login", {"email": email, "password": password}
            )
            result = self._normalizer.auth(raw, fallback_user)
            return self._session.login(result.user, result.token)

        async def local() -> Session:
            user = self._local.authenticate(email, password)
            return self._session.login(user, self._offline_token())

        await self._arbiter.attempt_remote("login", remote, local)
        self._category_names.clear()
        return self._session.current()

    async def register(self, username: str, email: str, password: str) -> Session:
        """
        Create an account and sign in with it.

        Raises:
            ValidationError: If a field is empty
            InvalidServerResponse: If the server answered without a token
            DuplicateUserError: If offline and the email is already taken locally
        """
        self._validator.validate_credentials(
            email, password, username=username, require_username=True
        )
        username = username.strip()
        email = email.strip()
        fallback_user = {"email": email, "username": username}

        async def remote() -> Session:
            raw = await self._remote.call(
                "POST",
                "/register",
                {"username": username, "email": email, "password": password},
            )
            result = self._normalizer.auth(raw, fallback_user)
            return self._session.register(result.user, result.token)

        async def local() -> Session:
            user = self._local.register_user(username, email, password)
            return self._session.register(user, self._offline_token())

        await self._arbiter.attempt_remote("register", remote, local)
        self._category_names.clear()
        return self._session.current()

    async def logout(self) -> None:
        self._session.logout()
        self._category_names.clear()

    async def update_profile(self, user: UserSummary) -> Session:
        """Replace the signed-in user's details. The token is kept."""
        return self._session.update_user(user)

    @staticmethod
    def _offline_token() -> str:
        return f"offline_{int(time.time() * 1000)}"

    # =========================================================================
    # INCOMES / EXPENSES
    # =========================================================================

    async def list_incomes(self) -> list[Transaction]:
        return await self._list_transactions(TransactionType.INCOME)

    async def create_income(self, draft: TransactionDraft) -> Transaction:
        return await self._create_transaction(TransactionType.INCOME, draft)

    async def update_income(self, income_id: str, changes: TransactionUpdate) -> Transaction:
        return await self._update_transaction(TransactionType.INCOME, income_id, changes)

    async def delete_income(self, income_id: str) -> bool:
        return await self._delete(TransactionType.INCOME.resource_kind, income_id)

    async def list_expenses(self) -> list[Transaction]:
        return await self._list_transactions(TransactionType.EXPENSE)

    async def create_expense(self, draft: TransactionDraft) -> Transaction:
        return await self._create_transaction(TransactionType.EXPENSE, draft)

    async def update_expense(self, expense_id: str, changes: TransactionUpdate) -> Transaction:
        return await self._update_transaction(TransactionType.EXPENSE, expense_id, changes)

    async def delete_expense(self, expense_id: str) -> bool:
        return await self._delete(TransactionType.EXPENSE.resource_kind, expense_id)

    async def _list_transactions(self, txn_type: TransactionType) -> list[Transaction]:
        kind = txn_type.resource_kind

        async def remote() -> list[Transaction]:
            raw = await self._remote.call("GET", f"/{kind}")
            records = self._normalizer.collection(kind, raw)
            await self._ensure_category_names(records)
            return self._normalizer.transactions(kind, records, self._category_names, txn_type)

        async def local() -> list[Transaction]:
            records = self._local.records(kind, self._session.user_key)
            return self._normalizer.transactions(
                kind, records, self._local_category_names(), txn_type
            )

        return await self._arbiter.run(f"list_{kind}", remote, local)

    async def _create_transaction(
        self,
        txn_type: TransactionType,
        draft: TransactionDraft,
    ) -> Transaction:
        """
        Create an income or expense.

        Raises:
            ValidationError: If category, amount or date is missing
            Rejected: If the server refused the record (nothing is stored locally)
        """
        self._validator.validate_transaction_draft(draft)
        kind = txn_type.resource_kind

        async def remote() -> Transaction:
            await self._prime_category_names(draft.category_id)
            raw = await self._remote.call("POST", f"/{kind}", draft.to_wire())
            # Written remotely: no further remote call may fail this operation
            record = self._normalizer.single(txn_type.value, raw)
            if self._normalizer.category_name(record, {}) is None:
                record = {**record, "categoryId": draft.category_id}
            return self._normalizer.transaction(
                record, self._category_names, txn_type, fallback_name=draft.name
            )

        async def local() -> Transaction:
            user_key = self._session.user_key
            pending = Transaction(
                id="pending",
                type=txn_type,
                name=draft.name,
                category=self._resolve_local_category(draft.category_id),
                amount=draft.amount,
                date=draft.date,
                description=draft.description,
            )
            stored = self._local.insert(kind, user_key, pending.to_record(), txn_type.id_prefix)
            return pending.model_copy(update={"id": stored["id"]})

        return await self._arbiter.run(f"create_{txn_type.value}", remote, local)

    async def _update_transaction(
        self,
        txn_type: TransactionType,
        record_id: str,
        changes: TransactionUpdate,
    ) -> Transaction:
        self._validator.validate_transaction_update(changes)
        kind = txn_type.resource_kind

        async def remote() -> Transaction:
            await self._prime_category_names(changes.category_id)
            raw = await self._remote.call("PUT", f"/{kind}/{record_id}", changes.to_wire())
            record = self._normalizer.single(txn_type.value, raw)
            if self._normalizer.category_name(record, {}) is None and changes.category_id:
                record = {**record, "categoryId": changes.category_id}
            return self._normalizer.transaction(
                record, self._category_names, txn_type, fallback_name=changes.name
            )

        async def local() -> Transaction:
            fields = changes.model_dump(exclude_none=True, exclude={"category_id"}, mode="json")
            if changes.category_id is not None:
                fields["category"] = self._resolve_local_category(changes.category_id)
            stored = self._local.update(kind, self._session.user_key, record_id, fields)
            return self._normalizer.transaction(stored, self._local_category_names(), txn_type)

        return await self._arbiter.run(f"update_{txn_type.value}", remote, local)

    async def _delete(self, kind: str, record_id: str) -> bool:
        async def remote() -> bool:
            await self._remote.call("DELETE", f"/{kind}/{record_id}")
            return True

        async def local() -> bool:
            return self._local.delete(kind, self._session.user_key, record_id)

        return await self._arbiter.run(f"delete_{kind}", remote, local)

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    async def list_categories(self) -> list[Category]:
        async def remote() -> list[Category]:
            return await self._fetch_remote_categories()

        async def local() -> list[Category]:
            return self._remember(self._load_local_categories())

        return await self._arbiter.run("list_categories", remote, local)

    async def create_category(self, draft: CategoryDraft) -> Category:
        """
        Create a category.

        Raises:
            ValidationError: If the name is empty
            DuplicateCategoryError: If the user already has this (name, type)
        """
        # Stage 1 needs no store; the listing is only for the duplicate check
        self._validator.validate_category_draft(draft)
        existing = await self.list_categories()
        self._validator.validate_category_draft(draft, existing)
        body = draft.model_dump(exclude_none=True, mode="json")

        async def remote() -> Category:
            raw = await self._remote.call("POST", "/categories", body)
            record = self._normalizer.single("category", raw)
            record = {"name": draft.name, "type": draft.type.value, **record}
            if not record.get("color") and draft.color:
                record["color"] = draft.color
            category = self._normalizer.category(record, len(existing))
            if category is None:
                raise InvalidServerResponse("Invalid response from server: unreadable category")
            self._category_names[category.id] = category.name
            return category

        async def local() -> Category:
            user_key = self._session.user_key
            records = self._local.categories(user_key)
            color = draft.color or palette_color(len(records))
            stored = self._local.insert(
                "categories",
                user_key,
                {"name": draft.name, "type": draft.type.value, "color": color},
                "cat",
            )
            category = Category(**stored)
            self._category_names[category.id] = category.name
            return category

        return await self._arbiter.run("create_category", remote, local)

    async def update_category(self, category_id: str, changes: CategoryUpdate) -> Category:
        self._validator.validate_category_update(category_id, changes)
        existing = await self.list_categories()
        self._validator.validate_category_update(category_id, changes, existing)
        position = next((i for i, c in enumerate(existing) if c.id == category_id), None)
        current = existing[position] if position is not None else None
        index = position if position is not None else len(existing)

        async def remote() -> Category:
            raw = await self._remote.call(
                "PUT", f"/categories/{category_id}", changes.to_wire()
            )
            record = self._normalizer.single("category", raw)
            if current is not None:
                record = {**current.model_dump(mode="json"), **changes.to_wire(), **record}
            category = self._normalizer.category(record, index)
            if category is None:
                raise InvalidServerResponse("Invalid response from server: unreadable category")
            self._category_names[category.id] = category.name
            return category

        async def local() -> Category:
            stored = self._local.update(
                "categories", self._session.user_key, category_id, changes.to_wire()
            )
            category = Category(**stored)
            self._category_names[category.id] = category.name
            return category

        return await self._arbiter.run("update_category", remote, local)

    async def delete_category(self, category_id: str) -> bool:
        deleted = await self._delete("categories", category_id)
        self._category_names.pop(str(category_id), None)
        return deleted

    async def _fetch_remote_categories(self) -> list[Category]:
        raw = await self._remote.call("GET", "/categories")
        return self._remember(self._normalizer.categories(raw))

    def _load_local_categories(self) -> list[Category]:
        records = self._local.categories(self._session.user_key)
        categories = []
        for index, record in enumerate(records):
            category = self._normalizer.category(record, index)
            if category is not None:
                categories.append(category)
        return categories

    def _remember(self, categories: list[Category]) -> list[Category]:
        self._category_names = {c.id: c.name for c in categories}
        return categories

    def _local_category_names(self) -> dict[str, str]:
        return {c.id: c.name for c in self._load_local_categories()}

    def _resolve_local_category(self, ref: CategoryRef) -> str:
        # Drafts reference categories by id; local records store the name
        return self._local_category_names().get(str(ref), str(ref))

    async def _prime_category_names(self, category_id: Optional[CategoryRef]) -> None:
        """
        Load category names ahead of a remote write.

        Runs before the write so that a failed lookup falls back to the local
        store with nothing written remotely. Without a known category id the
        whole list is loaded once, since the response may reference any id.
        """
        if category_id is not None:
            await self._ensure_category_names([{"categoryId": category_id}])
        elif not self._category_names:
            await self._fetch_remote_categories()

    async def _ensure_category_names(self, records: Iterable[Any]) -> None:
        """Fetch categories once if a record references an unknown category id."""
        missing = set()
        for record in records:
            if not isinstance(record, dict) or record.get("categoryId") is None:
                continue
            # A name carried by the record itself wins over the id
            if self._normalizer.category_name({**record, "categoryId": None}, {}):
                continue
            if str(record["categoryId"]) not in self._category_names:
                missing.add(str(record["categoryId"]))
        if missing:
            logger.debug("category_names_refresh", missing=sorted(missing))
            await self._fetch_remote_categories()

    # =========================================================================
    # AGGREGATES
    # =========================================================================

    async def filter_transactions(self, criteria: TransactionFilter) -> list[Transaction]:
        """Transactions matching ``criteria``, newest first."""

        async def remote() -> list[Transaction]:
            raw = await self._remote.call("POST", "/filter", criteria.to_wire())
            records = self._normalizer.collection("transactions", raw)
            await self._ensure_category_names(records)
            return _newest_first(self._normalizer.transactions(
                "transactions", records, self._category_names, criteria.type
            ))

        async def local() -> list[Transaction]:
            return _newest_first(t for t in self._local_transactions() if criteria.matches(t))

        return await self._arbiter.run("filter", remote, local)

    def _local_transactions(self) -> list[Transaction]:
        names = self._local_category_names()
        user_key = self._session.user_key
        merged = []
        for txn_type in TransactionType:
            kind = txn_type.resource_kind
            merged.extend(self._normalizer.transactions(
                kind, self._local.records(kind, user_key), names, txn_type
            ))
        return merged

    async def list_transactions(self) -> list[Transaction]:
        """Incomes and expenses merged, newest first."""
        incomes, expenses = await asyncio.gather(self.list_incomes(), self.list_expenses())
        return _newest_first([*incomes, *expenses])

    async def dashboard(self) -> DashboardData:
        """
        Incomes, expenses and categories read concurrently.

        Any failing read fails the whole aggregate; partial results are
        discarded.
        """
        incomes, expenses, categories = await asyncio.gather(
            self.list_incomes(),
            self.list_expenses(),
            self.list_categories(),
        )
        return DashboardData(incomes=incomes, expenses=expenses, categories=categories)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def ping(self) -> bool:
        """True when the remote store answers at all."""
        return await self._remote.ping()

    async def aclose(self) -> None:
        await self._remote.aclose()


def create_data_access(
    settings: Optional[Settings] = None,
    kv: Optional[KeyValueStore] = None,
    transport: Optional[Any] = None,
) -> DataAccessFacade:
    """
    Factory wiring every component of the persistence layer.

    Args:
        settings: Defaults to the cached environment settings
        kv: Key/value substrate; defaults to the JSON file from settings
        transport: httpx transport override, for tests

    Returns:
        A ready DataAccessFacade with its session restored from ``kv``
    """
    settings = settings or get_settings()
    kv = kv if kv is not None else JsonFileKeyValueStore(settings.storage.path)

    audit_logger = AuditLogger()
    session = SessionState(kv, audit_logger)
    remote = RemoteClient(session, settings.api, transport)

    return DataAccessFacade(
        session=session,
        remote=remote,
        local=LocalStore(kv),
        arbiter=ModeArbiter(session, audit_logger),
    )
