"""
Wallet and PIN endpoints.
"""
