"""
Beneficiary endpoints.
"""
