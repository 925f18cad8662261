"""
SifaPass Billing

Billing and entitlement core for the SifaPass credential-issuance platform.
"""

__version__ = "1.0.0"
