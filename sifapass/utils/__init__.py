"""
SifaPass Billing - Utilities Package
"""
