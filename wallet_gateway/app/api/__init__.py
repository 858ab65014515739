"""
Authenticated HTTP gateway shared by every service client.
"""

from .client import ApiGatewayClient, Backend, RequestDescriptor, parse_model, parse_models

__all__ = ["ApiGatewayClient", "Backend", "RequestDescriptor", "parse_model", "parse_models"]
