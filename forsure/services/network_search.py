"""
Cross-tenant lookups.

Phone and email searches hash the query and hit the network by exact key.
Address and name searches go to the public property records, since the
network itself stores no searchable address or name text.
"""

from __future__ import annotations

import re
from enum import Enum

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm import sessionmaker

from config.settings import MIN_SEARCH_QUERY_LENGTH, NETWORK_ADDRESS_SEARCH_LIMIT, NETWORK_NAME_SEARCH_LIMIT
from forsure.db.engine import session_scope
from forsure.db.property_models import PropertyRecord
from forsure.exceptions import InputValidationError
from forsure.models.network import NetworkProfile
from forsure.models.property import PropertyView
from forsure.services.network_identity_store import NetworkIdentityStore
from forsure.services.record_linkage import LIKE_ESCAPE, contains_pattern, escape_like
from forsure.utils.hashing import derive_identity_keys
from forsure.utils.logging_utils import Timer, log_search


class SearchKind(str, Enum):
    PHONE = "phone"
    EMAIL = "email"
    ADDRESS = "address"
    NAME = "name"


class NetworkSearchService:
    def __init__(self, session_factory: sessionmaker[Session], store: NetworkIdentityStore | None = None):
        self._session_factory = session_factory
        self.store = store or NetworkIdentityStore(session_factory)

    def search_network(self, kind: SearchKind | str, raw_value: str) -> NetworkProfile | list[PropertyView] | None:
        """
        Phone/email: the matching ``NetworkProfile`` or None.
        Address/name: matching property records (possibly empty).
        """
        try:
            kind = SearchKind(kind)
        except ValueError as exc:
            raise InputValidationError(f"Unsupported search kind: {kind}", field="kind") from exc

        value = (raw_value or "").strip()
        if kind is SearchKind.PHONE:
            return self._by_key("phone", derive_identity_keys(phone=value).phone_hash)
        if kind is SearchKind.EMAIL:
            return self._by_key("email", derive_identity_keys(email=value).email_hash)

        if len(value) < MIN_SEARCH_QUERY_LENGTH:
            raise InputValidationError(
                f"Search query must be at least {MIN_SEARCH_QUERY_LENGTH} characters", field="value"
            )
        if kind is SearchKind.ADDRESS:
            return self.search_addresses(value)
        return self.search_owner_names(value)

    def _by_key(self, kind: str, value: str | None) -> NetworkProfile | None:
        if value is None:
            raise InputValidationError(f"Malformed {kind} search value", field="value")
        with Timer() as timer:
            profile = self.store.find_by_hash(kind, value)
        log_search(source="network", kind=kind, results_raw=int(profile is not None), duration_ms=timer.elapsed_ms)
        return profile

    def search_addresses(self, value: str) -> list[PropertyView]:
        """Exact substring, then number + street, then street only."""
        term = value.upper()
        parts = [p for p in re.split(r"[\s,]+", term) if p]
        limit = NETWORK_ADDRESS_SEARCH_LIMIT

        with session_scope(self._session_factory) as session, Timer() as timer:
            rows = self._where(session, PropertyRecord.address_full, contains_pattern(term), limit)
            attempt = "exact"
            if not rows and len(parts) >= 2:
                number, street = parts[0], " ".join(parts[1:])
                rows = self._where(session, PropertyRecord.address_full, contains_pattern(number, street), limit)
                attempt = "number_street"
                if not rows:
                    rows = self._where(session, PropertyRecord.address_street, contains_pattern(street), limit)
                    attempt = "street"
            results = [PropertyView.model_validate(p) for p in rows]

        log_search(source="property_records", kind="address", results_raw=len(results),
                   duration_ms=timer.elapsed_ms, attempt=attempt)
        return results

    def search_owner_names(self, value: str) -> list[PropertyView]:
        """Whole query, then leading surname, then first name."""
        term = value.upper()
        parts = term.split()
        limit = NETWORK_NAME_SEARCH_LIMIT

        with session_scope(self._session_factory) as session, Timer() as timer:
            rows = self._where(session, PropertyRecord.owner_name, contains_pattern(term), limit)
            attempt = "exact"
            if not rows:
                # Owner names are stored "LAST FIRST"; a "First Last" query puts the surname at the end
                last_name = parts[-1]
                rows = self._where(session, PropertyRecord.owner_name, f"{escape_like(last_name)}%", limit)
                attempt = "last_name"
                if not rows and len(parts) > 1:
                    rows = self._where(session, PropertyRecord.owner_name, contains_pattern(parts[0]), limit)
                    attempt = "first_name"
            results = [PropertyView.model_validate(p) for p in rows]

        log_search(source="property_records", kind="name", results_raw=len(results),
                   duration_ms=timer.elapsed_ms, attempt=attempt)
        return results

    @staticmethod
    def _where(session: Session, column, pattern: str, limit: int) -> list[PropertyRecord]:
        return list(session.scalars(
            select(PropertyRecord)
            .where(column.ilike(pattern, escape=LIKE_ESCAPE))
            .order_by(PropertyRecord.id)
            .limit(limit)
        ))
