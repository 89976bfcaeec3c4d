"""Campaign services: stage machine, ledger, withdrawals and facade."""

from presale.services.campaign import CampaignSummary, PresaleCampaign, deploy_campaign
from presale.services.ledger import AssetLedger

__all__ = ["AssetLedger", "CampaignSummary", "PresaleCampaign", "deploy_campaign"]
