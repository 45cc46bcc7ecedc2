"""
Response Normalizer

The remote store has shipped several envelope formats over time. Each
recognized format is one matcher function; matchers are tried in a fixed
priority order and the first structural match wins.

Collections degrade to an empty list when nothing matches, because an empty
listing is a safe state. Authentication never degrades: no token means
InvalidServerResponse.
"""

from typing import Any, Callable, Mapping, NamedTuple, Optional

import structlog
from pydantic import ValidationError as PydanticValidationError

from money_manager.models.finance import (
    Category,
    Transaction,
    TransactionType,
    UserSummary,
    palette_color,
)
from money_manager.services.remote.errors import InvalidServerResponse


logger = structlog.get_logger(__name__)


# =============================================================================
# COLLECTION SHAPES
# =============================================================================

def _bare_array(kind: str, raw: Any) -> Optional[list]:
    return raw if isinstance(raw, list) else None


def _keyed_array(kind: str, raw: Any) -> Optional[list]:
    # { "<kind>": [...] }
    if isinstance(raw, dict) and isinstance(raw.get(kind), list):
        return raw[kind]
    return None


def _data_array(kind: str, raw: Any) -> Optional[list]:
    # { "data": [...] }
    if isinstance(raw, dict) and isinstance(raw.get("data"), list):
        return raw["data"]
    return None


def _success_envelope(kind: str, raw: Any) -> Optional[list]:
    # { "success": ..., "data": { "<kind>": [...] } }
    if not isinstance(raw, dict) or "success" not in raw:
        return None
    data = raw.get("data")
    if isinstance(data, dict) and isinstance(data.get(kind), list):
        return data[kind]
    return None


COLLECTION_MATCHERS: tuple[Callable[[str, Any], Optional[list]], ...] = (
    _bare_array,
    _keyed_array,
    _data_array,
    _success_envelope,
)


# =============================================================================
# AUTH SHAPES
# =============================================================================

class AuthCandidate(NamedTuple):
    token: str
    user: Optional[dict]


def _as_token(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _as_user(value: Any) -> Optional[dict]:
    return value if isinstance(value, dict) and value else None


def _token_and_user(raw: dict) -> Optional[AuthCandidate]:
    # { token, user }
    token = _as_token(raw.get("token"))
    return AuthCandidate(token, _as_user(raw.get("user"))) if token else None


def _success_with_data_user(raw: dict) -> Optional[AuthCandidate]:
    # { success, token, data: { user } }
    if not raw.get("success"):
        return None
    token = _as_token(raw.get("token"))
    data = raw.get("data") if isinstance(raw.get("data"), dict) else {}
    return AuthCandidate(token, _as_user(data.get("user"))) if token else None


def _access_token_and_user(raw: dict) -> Optional[AuthCandidate]:
    # { accessToken, user }
    token = _as_token(raw.get("accessToken"))
    return AuthCandidate(token, _as_user(raw.get("user"))) if token else None


def _data_token_and_user(raw: dict) -> Optional[AuthCandidate]:
    # { data: { token, user } }
    data = raw.get("data")
    if not isinstance(data, dict):
        return None
    token = _as_token(data.get("token"))
    return AuthCandidate(token, _as_user(data.get("user"))) if token else None


AUTH_MATCHERS: tuple[Callable[[dict], Optional[AuthCandidate]], ...] = (
    _token_and_user,
    _success_with_data_user,
    _access_token_and_user,
    _data_token_and_user,
)


class AuthResult(NamedTuple):
    """Token and user extracted from a login/register response."""
    token: str
    user: UserSummary
    user_synthesized: bool


# =============================================================================
# NORMALIZER
# =============================================================================

class ResponseNormalizer:
    """Maps raw remote bodies onto canonical models."""

    def collection(self, kind: str, raw: Any) -> list:
        """
        Extract the list for ``kind`` from any recognized envelope.

        Returns an empty list when no shape matches.
        """
        for matcher in COLLECTION_MATCHERS:
            records = matcher(kind, raw)
            if records is not None:
                return records

        logger.warning(
            "unrecognized_collection_shape",
            kind=kind,
            body_type=type(raw).__name__,
        )
        return []

    def auth(self, raw: Any, fallback_user: Mapping[str, Any]) -> AuthResult:
        """
        Extract token and user from a login/register body.

        A shape carrying both a token and a user wins over one carrying only
        a token. Without a user, one is synthesized from ``fallback_user``
        (the submitted email and username).

        Raises:
            InvalidServerResponse: If no recognized shape yields a token
        """
        if not isinstance(raw, dict):
            raise InvalidServerResponse("Invalid response from server: no token found")

        candidates = [c for c in (m(raw) for m in AUTH_MATCHERS) if c is not None]
        if not candidates:
            logger.warning("auth_token_missing", keys=sorted(raw.keys()))
            raise InvalidServerResponse("Invalid response from server: no token found")

        chosen = next((c for c in candidates if c.user is not None), candidates[0])

        if chosen.user is not None:
            try:
                return AuthResult(chosen.token, UserSummary(**chosen.user), False)
            except PydanticValidationError:
                logger.warning("auth_user_unreadable")

        logger.info("auth_user_synthesized")
        return AuthResult(chosen.token, UserSummary(**dict(fallback_user)), True)

    def single(self, kind: str, raw: Any) -> dict:
        """
        Extract one record from a write response.

        Accepts the bare object, ``{data: {...}}`` or ``{<kind>: {...}}``
        where ``kind`` is the singular resource name.

        Raises:
            InvalidServerResponse: If no record can be found
        """
        if isinstance(raw, dict):
            for key in (kind, "data"):
                nested = raw.get(key)
                if isinstance(nested, dict) and "id" in nested:
                    return nested
            if "id" in raw:
                return raw
        raise InvalidServerResponse(f"Invalid response from server: no {kind} record")

    # -- canonical records ---------------------------------------------------

    def categories(self, raw: Any) -> list[Category]:
        """Category listing with positional palette colors where missing."""
        categories = []
        for index, record in enumerate(self.collection("categories", raw)):
            category = self.category(record, index)
            if category is not None:
                categories.append(category)
        return categories

    def category(self, record: Any, index: int = 0) -> Optional[Category]:
        if not isinstance(record, dict):
            return None
        try:
            return Category(
                id=record.get("id"),
                name=record.get("name"),
                type=record.get("type"),
                color=record.get("color") or palette_color(index),
            )
        except PydanticValidationError as e:
            logger.warning("skipped_malformed_category", id=record.get("id"), error=str(e))
            return None

    def transactions(
        self,
        kind: str,
        raw: Any,
        category_names: Mapping[str, str],
        default_type: Optional[TransactionType] = None,
    ) -> list[Transaction]:
        """Transaction listing; malformed records are skipped."""
        transactions = []
        for record in self.collection(kind, raw):
            try:
                transactions.append(self.transaction(record, category_names, default_type))
            except (PydanticValidationError, ValueError, TypeError) as e:
                logger.warning("skipped_malformed_transaction", kind=kind, error=str(e))
        return transactions

    def transaction(
        self,
        record: Any,
        category_names: Mapping[str, str],
        default_type: Optional[TransactionType] = None,
        fallback_name: Optional[str] = None,
    ) -> Transaction:
        """
        Canonical transaction from a remote or local record.

        The category is resolved to its name from, in order: a ``category``
        string, a nested ``category`` object, ``categoryName``, or
        ``categoryId`` looked up in ``category_names``.
        """
        if not isinstance(record, dict):
            raise TypeError(f"Transaction record must be an object, got {type(record).__name__}")

        txn_type = record.get("type") or default_type
        if txn_type is None:
            raise ValueError("Transaction record has no type")

        return Transaction(
            id=record.get("id"),
            type=txn_type,
            name=record.get("name") or fallback_name,
            category=self.category_name(record, category_names),
            amount=record.get("amount"),
            date=record.get("date"),
            description=record.get("description"),
        )

    @staticmethod
    def category_name(record: dict, category_names: Mapping[str, str]) -> Optional[str]:
        category = record.get("category")
        if isinstance(category, str) and category.strip():
            return category
        if isinstance(category, dict) and category.get("name"):
            return category["name"]
        if record.get("categoryName"):
            return record["categoryName"]
        category_id = record.get("categoryId")
        if category_id is not None:
            return category_names.get(str(category_id), str(category_id))
        return None
