"""
Client intake and core banking push.
"""
from .client_service import ClientService, validate_intake
from .cbs_service import CBSService, customer_payload

__all__ = ["ClientService", "validate_intake", "CBSService", "customer_payload"]
