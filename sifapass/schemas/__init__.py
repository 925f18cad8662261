"""
SifaPass Billing - Pydantic Schemas Package
"""
