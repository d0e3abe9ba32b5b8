"""
OpenFGA integration: tuple keys, the HTTP client, audit dispatch and the
store/model configuration it needs.

This package does not import the domain store; the rehydrator in
``mandate_app.sync`` joins the two.
"""

from .audit import AuditDispatcher, AuditRecord
from .client import DuplicateTupleError, OpenFGAClient, TupleStoreError
from .config import StoreConfig, wait_for_store_config
from .model import AuthorizationModel, load_authorization_model
from .tuples import TupleKey

__all__ = [
    "AuditDispatcher",
    "AuditRecord",
    "AuthorizationModel",
    "DuplicateTupleError",
    "OpenFGAClient",
    "StoreConfig",
    "TupleKey",
    "TupleStoreError",
    "load_authorization_model",
    "wait_for_store_config",
]
