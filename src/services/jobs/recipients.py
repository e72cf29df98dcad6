"""
Recipient payload parsing and re-fetching from the customer records.
"""

import json
import logging
from typing import Any, Dict, List

from src.models import Customer
from src.services.scheduler.slot_scheduler import Recipient
from src.utils.error_handling import ValidationError

logger = logging.getLogger(__name__)


def _clean(value) -> str:
    return str(value).strip() if value is not None else ''


def parse_recipients(payload: Any) -> List[Dict[str, str]]:
    """
    Validate a recipient payload.

    Accepts a list of objects or a JSON string of one. Every recipient needs an
    ``id`` (``_id`` is accepted) or a ``phone``.
    """
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except ValueError:
            raise ValidationError("Recipient list is not valid JSON")

    if not payload:
        raise ValidationError("No recipients selected")
    if not isinstance(payload, list):
        raise ValidationError("Recipients must be a list")

    parsed = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise ValidationError(f"Recipient at position {index} is not an object")
        recipient_id = _clean(item.get('id') or item.get('_id'))
        phone = _clean(item.get('phone'))
        if not recipient_id and not phone:
            raise ValidationError(f"Recipient at position {index} has neither an id nor a phone")
        kind = item.get('kind', item.get('type'))
        parsed.append({
            'id': recipient_id,
            'name': _clean(item.get('name')),
            'phone': phone,
            'kind': _clean(kind) if kind is not None else None
        })
    return parsed


def load_recipient_snapshots(recipients: List[Dict[str, str]], account_ref: str) -> List[Recipient]:
    """
    Build recipient snapshots from the customer records.

    The external identity handle always comes from the stored customer; a
    recipient without one is still returned with an empty handle.
    """
    ids = [r['id'] for r in recipients if r['id']]
    customers = {}
    if ids:
        customers = {c.id: c for c in Customer.query.filter(Customer.id.in_(ids)).all()}

    snapshots = []
    for item in recipients:
        customer = customers.get(item['id'])
        if customer is None:
            if item['id']:
                logger.warning(f"Recipient {item['id']} not found in customer records, using submitted data")
            snapshots.append(Recipient(
                id=item['id'] or None,
                name=item['name'],
                phone=item['phone'],
                external_id='',
                kind=item['kind']
            ))
            continue

        snapshots.append(Recipient(
            id=str(customer.id),
            name=customer.name or item['name'],
            phone=customer.phone or item['phone'],
            external_id=customer.identity_for(account_ref),
            kind=customer.kind if customer.kind is not None else item['kind']
        ))
    return snapshots
