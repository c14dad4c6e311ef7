"""Connector registry and the built-in connector implementations."""

from .registry import BUILTIN_CONNECTORS, ConnectorRegistry, infer_connector_type

__all__ = ["BUILTIN_CONNECTORS", "ConnectorRegistry", "infer_connector_type"]
