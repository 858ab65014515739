"""
Wallet Gateway: authenticated client for the wallet auth and wallet backends.
"""

__version__ = "0.1.0"
