"""
Integration tests for the data access façade.

Each test drives a whole scenario inside one event loop against a
FakeServer, then checks both the result and what ended up in the key/value
store.
"""

import asyncio
import json

import httpx
import pytest

from conftest import FakeServer, respond, unreachable
from money_manager.models.audit import AuditEventType
from money_manager.models.finance import (
    CategoryDraft,
    CategoryUpdate,
    StorageMode,
    TransactionDraft,
    TransactionFilter,
    TransactionType,
    TransactionUpdate,
    UserSummary,
    palette_color,
)
from money_manager.services.remote import InvalidServerResponse, Rejected, Unauthorized
from money_manager.services.storage import DuplicateUserError, InvalidCredentials
from money_manager.validation import DuplicateCategoryError, ValidationError


SALARY_DRAFT = TransactionDraft(name="Salary", categoryId=1, amount=5000, date="2025-01-01")

REMOTE_CATEGORIES = [
    {"id": 1, "profileId": 42, "name": "Salary", "type": "income"},
    {"id": 4, "profileId": 42, "name": "Food", "type": "expense"},
]


class CategoryServer(FakeServer):
    """Remote store that remembers posted categories."""

    def __init__(self, categories=None):
        super().__init__()
        self.categories = [dict(c) for c in (categories or [])]
        self.routes[("GET", "/categories")] = self.list_categories
        self.routes[("POST", "/categories")] = self.create_category

    def list_categories(self, request):
        return httpx.Response(200, json=self.categories)

    def create_category(self, request):
        body = json.loads(request.content)
        record = {"id": len(self.categories) + 100, **body}
        self.categories.append(record)
        return httpx.Response(201, json=record)


class TestOfflineFallback:
    """A network failure moves work to the local store exactly once."""

    def test_create_income_offline_then_list(self, signed_in, build_facade, audit):
        """Test the unreachable-remote income scenario end to end."""
        server = FakeServer(fallback=unreachable)
        facade = build_facade(server)

        async def scenario():
            created = await facade.create_income(SALARY_DRAFT)
            listed = await facade.list_incomes()
            return created, listed

        created, listed = asyncio.run(scenario())

        assert created.id.startswith("inc_")
        assert created.type == TransactionType.INCOME
        assert created.amount == 5000
        assert created.category == "Salary"
        assert [t.id for t in listed] == [created.id]

        # One remote attempt, then every call routes locally
        assert server.paths() == ["GET /categories"]
        assert facade.session.mode == StorageMode.LOCAL
        assert len(audit.of_type(AuditEventType.MODE_SWITCHED)) == 1
        assert signed_in.get("incomes_42")[0]["id"] == created.id

    def test_local_ids_unique(self, signed_in, build_facade):
        """Test that rapid local creates never reuse an id."""
        facade = build_facade(FakeServer(fallback=unreachable))

        async def scenario():
            return [await facade.create_expense(TransactionDraft(
                categoryId="4", amount=i + 1, date="2025-01-02"
            )) for i in range(5)]

        created = asyncio.run(scenario())
        ids = [t.id for t in created]
        assert len(set(ids)) == 5
        assert all(i.startswith("exp_") for i in ids)
        assert all(t.category == "Food" for t in created)

    def test_local_update_and_delete(self, signed_in, build_facade):
        facade = build_facade(FakeServer(fallback=unreachable))

        async def scenario():
            created = await facade.create_income(SALARY_DRAFT)
            updated = await facade.update_income(
                created.id, TransactionUpdate(amount=6000, categoryId="2")
            )
            deleted = await facade.delete_income(created.id)
            remaining = await facade.list_incomes()
            return created, updated, deleted, remaining

        created, updated, deleted, remaining = asyncio.run(scenario())

        assert updated.id == created.id
        assert updated.amount == 6000
        assert updated.category == "Freelance"
        assert deleted is True
        assert remaining == []

    def test_local_filter_newest_first(self, signed_in, build_facade):
        """Test client-side filtering over both collections."""
        facade = build_facade(FakeServer(fallback=unreachable))

        async def scenario():
            await facade.create_income(SALARY_DRAFT)
            await facade.create_expense(TransactionDraft(categoryId="4", amount=20, date="2025-01-03"))
            await facade.create_expense(TransactionDraft(categoryId="7", amount=80, date="2025-01-09"))
            expenses = await facade.filter_transactions(TransactionFilter(type="expense"))
            everything = await facade.list_transactions()
            return expenses, everything

        expenses, everything = asyncio.run(scenario())

        assert [t.amount for t in expenses] == [80, 20]
        assert [t.category for t in expenses] == ["Bills", "Food"]
        assert len(everything) == 3
        assert everything[-1].type == TransactionType.INCOME


class TestRemoteFailures:
    """A reachable server's refusal is surfaced, never absorbed."""

    def test_rejected_create_is_not_stored_locally(self, signed_in, build_facade):
        """Test that a 400 neither flips the mode nor writes the record."""
        server = FakeServer({
            ("POST", "/incomes"): respond(400, json={"message": "Invalid data"}),
            ("GET", "/categories"): respond(json=REMOTE_CATEGORIES),
        })
        facade = build_facade(server)

        with pytest.raises(Rejected) as exc_info:
            asyncio.run(facade.create_income(SALARY_DRAFT))

        assert exc_info.value.status_code == 400
        assert facade.session.mode == StorageMode.REMOTE
        assert signed_in.get("incomes_42") is None

    def test_dashboard_fails_as_a_whole(self, signed_in, build_facade):
        """Test that one failing read discards the other results."""
        server = FakeServer({
            ("GET", "/incomes"): respond(json=[]),
            ("GET", "/expenses"): respond(400, json={"error": "bad request"}),
            ("GET", "/categories"): respond(json=REMOTE_CATEGORIES),
        })
        facade = build_facade(server)

        with pytest.raises(Rejected):
            asyncio.run(facade.dashboard())
        assert facade.session.mode == StorageMode.REMOTE

    def test_unauthorized_clears_session(self, signed_in, build_facade):
        server = FakeServer({("GET", "/incomes"): respond(401)})
        facade = build_facade(server)

        with pytest.raises(Unauthorized):
            asyncio.run(facade.list_incomes())

        assert facade.session.is_authenticated is False
        assert signed_in.get("token") is None

    def test_validation_runs_before_any_call(self, signed_in, build_facade):
        """Test that invalid input never reaches a store."""
        server = FakeServer(fallback=unreachable)
        facade = build_facade(server)

        with pytest.raises(ValidationError, match="Missing required fields: category, amount, date"):
            asyncio.run(facade.create_income(TransactionDraft(name="Salary")))

        assert server.requests == []
        assert facade.session.mode == StorageMode.REMOTE

    @pytest.mark.parametrize("amount", [float("nan"), float("inf")])
    def test_non_finite_amount_reaches_no_store(self, signed_in, build_facade, amount):
        """Test that NaN and infinity are rejected as invalid amounts."""
        server = FakeServer(fallback=unreachable)
        facade = build_facade(server)

        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(facade.create_income(
                TransactionDraft(categoryId=1, amount=amount, date="2025-01-01")
            ))

        assert exc_info.value.fields == ["amount"]
        assert server.requests == []
        assert signed_in.get("incomes_42") is None


class TestRemoteReads:
    """Normalized data from the remote store."""

    def test_dashboard_resolves_category_names(self, signed_in, build_facade):
        server = FakeServer({
            ("GET", "/incomes"): respond(json={"success": True, "data": {"incomes": [
                {"id": 1, "name": "January", "categoryId": 1, "amount": 5000, "date": "2025-01-31T00:00:00"},
            ]}}),
            ("GET", "/expenses"): respond(json={"data": [
                {"id": 9, "name": "Lunch", "categoryId": 4, "categoryName": "Food", "amount": 12.5, "date": "2025-02-01"},
            ]}),
            ("GET", "/categories"): respond(json=REMOTE_CATEGORIES),
        })
        facade = build_facade(server)

        data = asyncio.run(facade.dashboard())

        assert [t.category for t in data.incomes] == ["Salary"]
        assert [t.category for t in data.expenses] == ["Food"]
        assert [c.color for c in data.categories] == [palette_color(0), palette_color(1)]
        assert data.balance == 4987.5

    def test_remote_create_fills_name_and_category(self, signed_in, build_facade):
        """Test that the created record is returned in canonical form."""
        server = FakeServer({
            ("POST", "/incomes"): respond(201, json={
                "id": 10, "categoryId": 1, "amount": 5000, "date": "2025-01-01",
            }),
            ("GET", "/categories"): respond(json=REMOTE_CATEGORIES),
        })
        facade = build_facade(server)

        created = asyncio.run(facade.create_income(SALARY_DRAFT))

        assert created.id == "10"
        assert created.name == "Salary"
        assert created.category == "Salary"
        assert server.paths() == ["GET /categories", "POST /incomes"]
        posted = json.loads(server.requests[1].content)
        assert posted["categoryId"] == 1

    def test_remote_create_unknown_category_stays_remote(self, signed_in, build_facade):
        """Test that a response naming an uncached category does not trigger more calls."""
        server = FakeServer({
            ("POST", "/incomes"): respond(201, json={
                "id": 10, "categoryId": 99, "amount": 5000, "date": "2025-01-01",
            }),
            ("GET", "/categories"): respond(json=REMOTE_CATEGORIES),
        })
        facade = build_facade(server)

        created = asyncio.run(facade.create_income(SALARY_DRAFT))

        assert created.id == "10"
        assert created.category == "99"
        assert server.paths() == ["GET /categories", "POST /incomes"]
        assert facade.session.mode == StorageMode.REMOTE
        assert signed_in.get("incomes_42") is None

    def test_category_lookup_failure_writes_only_locally(self, signed_in, build_facade):
        """Test that an unreachable lookup falls back before anything is posted."""
        server = FakeServer({
            ("POST", "/incomes"): respond(201, json={
                "id": 10, "categoryId": 1, "amount": 5000, "date": "2025-01-01",
            }),
            ("GET", "/categories"): unreachable,
        })
        facade = build_facade(server)

        created = asyncio.run(facade.create_income(SALARY_DRAFT))

        assert created.id.startswith("inc_")
        assert server.paths() == ["GET /categories"]
        assert [r["id"] for r in signed_in.get("incomes_42")] == [created.id]
        assert facade.session.mode == StorageMode.LOCAL

    def test_remote_update_resolves_category_before_put(self, signed_in, build_facade):
        """Test that the lookup for an update also happens before the write."""
        server = FakeServer({
            ("PUT", "/incomes/10"): respond(json={
                "id": 10, "categoryId": 1, "amount": 6000, "date": "2025-01-01",
            }),
            ("GET", "/categories"): respond(json=REMOTE_CATEGORIES),
        })
        facade = build_facade(server)

        updated = asyncio.run(facade.update_income("10", TransactionUpdate(amount=6000)))

        assert updated.category == "Salary"
        assert server.paths() == ["GET /categories", "PUT /incomes/10"]

    def test_remote_delete(self, signed_in, build_facade):
        server = FakeServer({("DELETE", "/expenses/9"): respond(204)})
        facade = build_facade(server)
        assert asyncio.run(facade.delete_expense("9")) is True


class TestCategories:
    """Category uniqueness and colors."""

    def test_empty_category_name_reaches_no_store(self, signed_in, build_facade):
        """Test that an empty name fails before the duplicate check lists anything."""
        server = CategoryServer(REMOTE_CATEGORIES)
        facade = build_facade(server)

        with pytest.raises(ValidationError):
            asyncio.run(facade.create_category(CategoryDraft(name="", type="income")))
        with pytest.raises(ValidationError):
            asyncio.run(facade.update_category("1", CategoryUpdate(name="")))

        assert server.requests == []
        assert facade.session.mode == StorageMode.REMOTE

    def test_duplicate_category_rejected_before_post(self, signed_in, build_facade):
        server = CategoryServer(REMOTE_CATEGORIES)
        facade = build_facade(server)

        with pytest.raises(DuplicateCategoryError):
            asyncio.run(facade.create_category(CategoryDraft(name="food", type="expense")))

        assert server.paths() == ["GET /categories"]

    @pytest.mark.parametrize("color, expected", [
        ("#abcdef", "#abcdef"),
        (None, palette_color(len(REMOTE_CATEGORIES))),
    ])
    def test_remote_color_round_trip(self, signed_in, build_facade, color, expected):
        """Test that the listing shows the explicit color or the positional fallback."""
        facade = build_facade(CategoryServer(REMOTE_CATEGORIES))

        async def scenario():
            created = await facade.create_category(
                CategoryDraft(name="Gifts", type="income", color=color)
            )
            return created, await facade.list_categories()

        created, listed = asyncio.run(scenario())

        match = [c for c in listed if (c.name, c.type) == ("Gifts", TransactionType.INCOME)]
        assert len(match) == 1
        assert match[0].color == expected
        assert created.color == expected

    @pytest.mark.parametrize("color, expected", [
        ("#abcdef", "#abcdef"),
        (None, palette_color(7)),
    ])
    def test_local_color_round_trip(self, signed_in, build_facade, color, expected):
        facade = build_facade(FakeServer(fallback=unreachable))

        async def scenario():
            await facade.create_category(CategoryDraft(name="Gifts", type="income", color=color))
            return await facade.list_categories()

        listed = asyncio.run(scenario())

        match = [c for c in listed if c.name == "Gifts"]
        assert len(match) == 1
        assert match[0].id.startswith("cat_")
        assert match[0].color == expected

    def test_local_duplicate_against_defaults(self, signed_in, build_facade):
        """Test uniqueness against the seeded defaults."""
        facade = build_facade(FakeServer(fallback=unreachable))
        with pytest.raises(DuplicateCategoryError):
            asyncio.run(facade.create_category(CategoryDraft(name="SALARY", type="income")))


class TestAuthentication:
    """Login and register in both modes."""

    def test_login_without_token_leaves_session_unchanged(self, signed_in, build_facade):
        server = FakeServer({("POST", "/login"): respond(json={"success": True, "user": {"id": 7}})})
        facade = build_facade(server)
        before = facade.session

        with pytest.raises(InvalidServerResponse):
            asyncio.run(facade.login("bob@example.com", "pw"))

        assert facade.session == before
        assert signed_in.get("token") == "remote-token-123"

    def test_remote_login(self, kv, build_facade):
        """Test a token-only response with a synthesized user."""
        server = FakeServer({("POST", "/login"): respond(json={"accessToken": "jwt-1"})})
        facade = build_facade(server)

        session = asyncio.run(facade.login("bob@example.com", "pw"))

        assert session.token == "jwt-1"
        assert session.user.username == "bob"
        assert session.mode == StorageMode.REMOTE
        assert kv.get("token") == "jwt-1"
        assert "Authorization" not in server.requests[0].headers

    def test_login_returns_to_remote_mode(self, signed_in, build_facade):
        """Test that a fresh sign-in ends local mode."""
        server = FakeServer({
            ("POST", "/login"): respond(json={"token": "jwt-2", "user": {"id": 42, "email": "alice@example.com"}}),
        })
        facade = build_facade(server)
        facade.arbiter.switch_to_local("test")

        session = asyncio.run(facade.login("alice@example.com", "pw"))

        assert session.mode == StorageMode.REMOTE
        assert session.token == "jwt-2"

    def test_offline_register_and_login(self, kv, build_facade):
        """Test offline accounts when the server is unreachable."""
        facade = build_facade(FakeServer(fallback=unreachable))

        async def scenario():
            registered = await facade.register("carol", "carol@example.com", "pw")
            await facade.logout()
            logged_in = await facade.login("carol@example.com", "pw")
            return registered, logged_in

        registered, logged_in = asyncio.run(scenario())

        assert registered.token.startswith("offline_")
        assert registered.mode == StorageMode.LOCAL
        assert logged_in.user.id == registered.user.id
        assert logged_in.mode == StorageMode.LOCAL
        assert kv.get("backendMode") == "local"

    def test_offline_login_unknown_account(self, kv, build_facade):
        facade = build_facade(FakeServer(fallback=unreachable))
        with pytest.raises(InvalidCredentials):
            asyncio.run(facade.login("nobody@example.com", "pw"))
        assert facade.session.is_authenticated is False

    def test_offline_register_duplicate_email(self, kv, build_facade):
        facade = build_facade(FakeServer(fallback=unreachable))

        async def scenario():
            await facade.register("carol", "carol@example.com", "pw")
            await facade.register("carol2", "carol@example.com", "pw")

        with pytest.raises(DuplicateUserError):
            asyncio.run(scenario())

    def test_update_profile_keeps_token(self, signed_in, build_facade):
        facade = build_facade(FakeServer())
        session = asyncio.run(facade.update_profile(
            UserSummary(id="42", username="Alice Cooper", email="alice@example.com")
        ))
        assert session.user.username == "Alice Cooper"
        assert session.token == "remote-token-123"


class TestLifecycle:
    """Ping and close."""

    def test_ping(self, kv, build_facade):
        assert asyncio.run(build_facade(unreachable).ping()) is False
        assert asyncio.run(build_facade(FakeServer()).ping()) is True

    def test_aclose_is_repeatable(self, kv, build_facade):
        facade = build_facade(FakeServer())

        async def scenario():
            await facade.ping()
            await facade.aclose()
            await facade.aclose()

        asyncio.run(scenario())
