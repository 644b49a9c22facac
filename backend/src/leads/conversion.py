"""Lead conversion into a contact and/or a deal.

Conversion runs inside the caller's transaction: either every record is
created and the lead is marked ``converted``, or nothing is (the caller
rolls back on error).
"""

from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from deals.service import create_deal
from exceptions import BusinessRuleError
from models.contact import Contact
from models.deal import Deal
from models.lead import Lead
from models.user import User


def split_name(name: str) -> Tuple[str, str]:
    """``"Ada King Lovelace"`` -> ``("Ada", "King Lovelace")``."""
    parts = (name or "").split()
    if not parts:
        return name or "", ""
    return parts[0], " ".join(parts[1:])


def convert_to_contact(
    db: Session,
    lead: Lead,
    data: Optional[Dict[str, Any]] = None,
    actor: Optional[User] = None,
) -> Contact:
    data = data or {}
    first_name, last_name = split_name(lead.name)
    contact = Contact(
        tenant_id=lead.tenant_id,
        lead_id=lead.id,
        first_name=data.get("first_name") or first_name,
        last_name=data.get("last_name") if data.get("last_name") is not None else last_name,
        email=lead.email,
        phone=lead.phone,
        created_by=actor.id if actor else lead.created_by,
    )
    db.add(contact)
    lead.status = "converted"
    db.flush()
    return contact


def convert_to_deal(
    db: Session,
    lead: Lead,
    data: Optional[Dict[str, Any]] = None,
    actor: Optional[User] = None,
    contact: Optional[Contact] = None,
) -> Deal:
    """Open a deal for the lead.

    Deal defaults: the lead's name as title, amount 0, currency USD,
    probability 50, the lead's assignee; the tenant's default pipeline and
    its first stage unless given.

    Raises:
        BusinessRuleError: "Pipeline and stage are required to create a deal."
    """
    data = data or {}
    deal = create_deal(
        db,
        {
            "lead_id": lead.id,
            "contact_id": contact.id if contact else data.get("contact_id"),
            "title": data.get("title") or lead.name,
            "amount": data.get("amount") or 0,
            "currency": data.get("currency") or "USD",
            "pipeline_id": data.get("pipeline_id"),
            "stage_id": data.get("stage_id"),
            "probability": data["probability"] if data.get("probability") is not None else 50,
            "expected_close_date": data.get("expected_close_date"),
            "assigned_to": data.get("assigned_to") or lead.assigned_to,
        },
        actor,
    )
    lead.status = "converted"
    db.flush()
    return deal


def convert(
    db: Session,
    lead: Lead,
    create_contact: bool = True,
    create_deal_: bool = False,
    contact_data: Optional[Dict[str, Any]] = None,
    deal_data: Optional[Dict[str, Any]] = None,
    actor: Optional[User] = None,
) -> Tuple[Optional[Contact], Optional[Deal]]:
    """Convert ``lead`` to a contact, a deal, or both.

    Raises:
        BusinessRuleError: Lead already converted, nothing requested, or no
            pipeline/stage available for the deal
    """
    if lead.status == "converted":
        raise BusinessRuleError("Lead has already been converted.")
    if not create_contact and not create_deal_:
        raise BusinessRuleError("Nothing to convert: request a contact, a deal or both.")

    contact = convert_to_contact(db, lead, contact_data, actor) if create_contact else None
    deal = convert_to_deal(db, lead, deal_data, actor, contact) if create_deal_ else None
    return contact, deal
