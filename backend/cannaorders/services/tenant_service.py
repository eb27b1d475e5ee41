"""
Tenant scoping helpers.

Every request carries a tenant (organization) id from the gateway.
Dispensary ids taken from client input must be checked against it before
any read or write; a foreign dispensary is reported exactly like a missing
one.
"""

from ..extensions import db
from ..models import Dispensary
from .errors import NotFoundError, TenantAccessError


def require_dispensary_in_org(dispensary_id: int, org_id: int) -> Dispensary:
    dispensary = db.session.get(Dispensary, dispensary_id)
    if dispensary is None:
        raise NotFoundError(
            f"Dispensary {dispensary_id} not found", details={"dispensary_id": dispensary_id}
        )
    if dispensary.org_id != org_id:
        raise TenantAccessError(
            f"Dispensary {dispensary_id} not found", details={"dispensary_id": dispensary_id}
        )
    return dispensary
