"""Presale engine: contribution ledger, stage machine and vesting payouts."""

__version__ = "0.1.0"
