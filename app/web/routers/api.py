from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Response
from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import text

from app.web.dependencies import Services, get_services
from config.settings import PROPERTY_SYNC_LIMIT
from forsure.db.engine import session_scope
from forsure.exceptions import StoreError
from forsure.models.customer import CustomerFacts, CustomerUpdate
from forsure.models.network import MatchType, NetworkProfile
from forsure.services.network_search import SearchKind

router = APIRouter(tags=["api"])


class BusinessIn(BaseModel):
    name: str


class CustomerIn(BaseModel):
    full_name: str = ""
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    county: Optional[str] = None

    def to_facts(self) -> CustomerFacts:
        return CustomerFacts.build(**self.model_dump())


class EventIn(BaseModel):
    severity: int
    category: Optional[str] = None
    note: Optional[str] = None


class LinkIn(BaseModel):
    identity_id: str
    match_type: MatchType = MatchType.ADDRESS


class PropertySyncIn(BaseModel):
    county: Optional[str] = None
    municipality: Optional[str] = None
    limit: int = Field(default=PROPERTY_SYNC_LIMIT, ge=1)


def _serialize(result):
    if result is None:
        return None
    if isinstance(result, NetworkProfile):
        return result.model_dump(mode="json")
    return [p.model_dump(mode="json") for p in result]


# -----------------------------------------------------------------------------
# Health
# -----------------------------------------------------------------------------

@router.get("/health")
def api_health(services: Services = Depends(get_services)):
    """API health check with database status."""
    try:
        with session_scope(services.session_factory) as session:
            session.execute(text("SELECT 1"))
        database = {"available": True}
    except StoreError as e:
        database = {"available": False, "error": str(e)}
    return {"status": "ok" if database["available"] else "degraded", "database": database}


# -----------------------------------------------------------------------------
# Tenant routes
# -----------------------------------------------------------------------------

@router.post("/businesses", status_code=201)
def create_business(body: BusinessIn, services: Services = Depends(get_services)):
    return {"id": services.customers.create_business(body.name), "name": body.name.strip()}


@router.get("/businesses/{business_id}/customers")
def list_customers(business_id: str, services: Services = Depends(get_services)):
    return [c.model_dump(mode="json") for c in services.customers.list_customers(business_id)]


@router.post("/businesses/{business_id}/customers", status_code=201)
def add_customer(
    business_id: str,
    body: CustomerIn,
    skip_duplicate_check: bool = False,
    services: Services = Depends(get_services),
):
    customer = services.customers.add_customer(
        business_id, body.to_facts(), skip_duplicate_check=skip_duplicate_check
    )
    return customer.model_dump(mode="json")


@router.post("/businesses/{business_id}/customers/duplicate-check")
def check_for_duplicate(business_id: str, body: CustomerIn, services: Services = Depends(get_services)):
    match = services.customers.check_for_duplicate(business_id, body.to_facts())
    if match is None:
        return {"is_duplicate": False}
    return {
        "is_duplicate": True,
        "matched_on": match.matched_on,
        "existing_customer_id": match.existing_customer_id,
        "existing_customer_name": match.existing_customer_name,
    }


@router.get("/businesses/{business_id}/customers/{customer_id}")
def get_customer(business_id: str, customer_id: str, services: Services = Depends(get_services)):
    return services.customers.get_customer(business_id, customer_id).model_dump(mode="json")


@router.patch("/businesses/{business_id}/customers/{customer_id}")
def update_customer(
    business_id: str,
    customer_id: str,
    body: CustomerUpdate,
    services: Services = Depends(get_services),
):
    return services.customers.update_customer(business_id, customer_id, body).model_dump(mode="json")


@router.delete("/businesses/{business_id}/customers/{customer_id}", status_code=204)
def delete_customer(business_id: str, customer_id: str, services: Services = Depends(get_services)):
    services.customers.delete_customer(business_id, customer_id)
    return Response(status_code=204)


@router.get("/businesses/{business_id}/customers/{customer_id}/events")
def list_events(business_id: str, customer_id: str, services: Services = Depends(get_services)):
    return [e.model_dump(mode="json") for e in services.customers.list_events(business_id, customer_id)]


@router.post("/businesses/{business_id}/customers/{customer_id}/events", status_code=201)
def log_event(business_id: str, customer_id: str, body: EventIn, services: Services = Depends(get_services)):
    event = services.customers.log_event(
        business_id, customer_id, body.severity, category=body.category, note=body.note
    )
    return event.model_dump(mode="json")


@router.get("/businesses/{business_id}/customers/{customer_id}/reliability")
def reliability_profile(business_id: str, customer_id: str, services: Services = Depends(get_services)):
    return services.customers.get_reliability_profile(business_id, customer_id).model_dump(mode="json")


@router.get("/businesses/{business_id}/customers/{customer_id}/property-matches")
def property_matches(business_id: str, customer_id: str, services: Services = Depends(get_services)):
    customer = services.customers.get_customer(business_id, customer_id)
    facts = CustomerFacts.build(**customer.model_dump(include=set(CustomerFacts.model_fields)))
    return [
        {
            "property": c.property.model_dump(mode="json"),
            "match_type": c.match_type.value,
            "confidence": c.confidence,
            "definitive": c.definitive,
        }
        for c in services.linkage.find_property_matches(facts)
    ]


@router.post("/businesses/{business_id}/network-sync")
def sync_business(business_id: str, services: Services = Depends(get_services)):
    return {"synced": services.customers.sync_business_customers(business_id)}


# -----------------------------------------------------------------------------
# Network and property routes
# -----------------------------------------------------------------------------

@router.get("/network/search")
def search_network(kind: SearchKind, value: str, services: Services = Depends(get_services)):
    result = services.search.search_network(kind, value)
    if kind in (SearchKind.PHONE, SearchKind.EMAIL):
        return {"found": result is not None, "profile": _serialize(result)}
    return {"found": bool(result), "properties": _serialize(result)}


@router.get("/network/identities/{identity_id}")
def get_identity(identity_id: str, services: Services = Depends(get_services)):
    return services.store.get_profile(identity_id).model_dump(mode="json")


@router.get("/properties/search")
def search_properties(q: str, services: Services = Depends(get_services)):
    return [
        {"property": h.property.model_dump(mode="json"), "match_type": h.match_type.value, "score": h.score}
        for h in services.linkage.search_properties(q)
    ]


@router.post("/properties/{property_id}/identity")
def create_identity_from_property(property_id: str, services: Services = Depends(get_services)):
    return {"identity_id": services.property_sync.create_identity_from_property(property_id)}


@router.post("/properties/{property_id}/links")
def link_property(property_id: str, body: LinkIn, services: Services = Depends(get_services)):
    link = services.linkage.link_customer_to_property(body.identity_id, property_id, body.match_type)
    return {
        "property_record_id": link.property_record_id,
        "network_identity_id": link.network_identity_id,
        "match_type": link.match_type,
        "match_confidence": link.match_confidence,
    }


# -----------------------------------------------------------------------------
# Admin
# -----------------------------------------------------------------------------

@router.post("/admin/property-sync")
def property_sync(body: PropertySyncIn, services: Services = Depends(get_services)):
    logger.info(f"Property sync requested (county={body.county}, municipality={body.municipality}, limit={body.limit})")
    result = services.property_sync.batch_sync_properties(
        county=body.county, municipality=body.municipality, limit=body.limit
    )
    return {"created": result.created, "skipped": result.skipped}


@router.post("/admin/clean-streaks")
def refresh_clean_streaks(services: Services = Depends(get_services)):
    return {"updated": services.store.refresh_clean_streaks()}
