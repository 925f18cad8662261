"""
SifaPass Billing - Services Package

Business logic for the plan catalog, invoices, the credit ledger, the
Paystack gateway, billing coordination, entitlements and dashboard reads.
"""
