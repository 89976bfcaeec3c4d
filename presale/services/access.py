"""Single-administrator access control."""

from presale.db.models import Campaign
from presale.errors import AuthorizationError
from presale.utils.formatting import normalize_identity


def is_admin(campaign: Campaign, caller: str) -> bool:
    return normalize_identity(caller) == campaign.admin_address


def require_admin(campaign: Campaign, caller: str) -> None:
    """Raise AuthorizationError unless ``caller`` administers ``campaign``."""
    if not is_admin(campaign, caller):
        raise AuthorizationError(f"{caller} is not the administrator of {campaign.address}")
