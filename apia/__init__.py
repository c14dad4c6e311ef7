"""APIA: declarative JSON flows compiled into a masterlist and run by an async interpreter."""

from .builder import BuildResult, build
from .condition import evaluate_condition
from .config import GlobalConfig, RuntimeSettings
from .connectors import ConnectorRegistry, infer_connector_type
from .errors import ApiaError, BuildError, RuntimeFlowError
from .loader import FlowLoader
from .masterlist import Masterlist, compile_masterlist, compile_source, validate_documents
from .references import extract_references
from .router import RouteTable, error_response, load_routes
from .runtime import Runtime

__version__ = "0.1.0"

__all__ = [
    "ApiaError",
    "BuildError",
    "BuildResult",
    "ConnectorRegistry",
    "FlowLoader",
    "GlobalConfig",
    "Masterlist",
    "RouteTable",
    "Runtime",
    "RuntimeFlowError",
    "RuntimeSettings",
    "build",
    "compile_masterlist",
    "compile_source",
    "error_response",
    "evaluate_condition",
    "extract_references",
    "infer_connector_type",
    "load_routes",
    "validate_documents",
]
