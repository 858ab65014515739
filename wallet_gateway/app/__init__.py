"""
Wallet Gateway client application package.
"""
