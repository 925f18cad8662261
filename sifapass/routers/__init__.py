"""
SifaPass Billing - Routers Package

FastAPI route handlers.

Routers:
- billing: Dashboard, invoices, usage, plan switching and Paystack payments
- plans: Plan catalog administration
"""

from sifapass.routers import billing, plans

__all__ = [
    "billing",
    "plans",
]
