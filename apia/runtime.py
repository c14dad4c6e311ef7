"""The flow interpreter.

A flow is executed by loading its document through the masterlist and
dispatching on its kind: connectors call a module, decisions pick one branch,
sequences thread the payload through their steps in order. Every flow returns
the payload the next flow receives.
"""

from __future__ import annotations
import asyncio
import copy
import time
from collections import deque
from pathlib import Path
from typing import Any, Deque, Dict, List, Mapping, Optional

from loguru import logger
from opentelemetry import trace

from .config import GlobalConfig, RuntimeSettings
from .connectors.registry import ConnectorRegistry, infer_connector_type
from .errors import (
    ConnectorExecutionError,
    ConnectorTimeoutError,
    InvalidFlowError,
    NoMatchError,
    RouteNotFoundError,
    RuntimeFlowError,
    UnknownStepError,
)
from .condition import evaluate_condition
from .loader import FlowLoader
from .masterlist import CONNECTORS_DIR, GLOBAL_CONFIG, ROUTER_CONFIG
from .router import RouteTable, load_routes, request_payload
from .schemas import ConnectorFlow, DecisionFlow, FlowDocument, SequenceFlow
from .types import FieldReference, FlowReference, InlineConnector, InlineDecision

_tracer = trace.get_tracer(__name__)


class Runtime:
    def __init__(
        self,
        build_dir: Optional[Path] = None,
        settings: Optional[RuntimeSettings] = None,
        loader: Optional[FlowLoader] = None,
        registry: Optional[ConnectorRegistry] = None,
        global_config: Optional[GlobalConfig] = None,
        routes: Optional[RouteTable] = None,
    ):
        self.settings = settings or RuntimeSettings.from_env()
        self.build_dir = Path(build_dir) if build_dir is not None else self.settings.build_dir
        self.global_config = global_config or GlobalConfig.load(self.build_dir / GLOBAL_CONFIG)
        self.loader = loader or FlowLoader(self.build_dir)
        self.registry = registry or ConnectorRegistry(
            self.global_config, search_paths=[self.build_dir / CONNECTORS_DIR])
        self.routes = routes if routes is not None else self._load_routes()
        self.connector_timeout = self.settings.connector_timeout
        self.console: Deque[str] = deque(maxlen=self.settings.console_limit)
        self.metrics: Dict[str, Any] = {"flows": 0, "connectors": 0, "decisions": 0, "connector_ms": {}}
        self.tracer = _tracer

    def _load_routes(self) -> RouteTable:
        path = self.build_dir / ROUTER_CONFIG
        return load_routes(path) if path.is_file() else RouteTable()

    def log(self, msg: str):
        self.console.append(msg)
        logger.info(msg)

    # ---------- Entry points ----------

    async def execute_flow(self, name: str, payload: Optional[Mapping[str, Any]] = None) -> Any:
        """Run flow `name` and return its final payload.

        The caller's payload is deep-copied first, so nothing it holds is
        mutated by connectors.
        """
        start = copy.deepcopy(dict(payload)) if payload is not None else {}
        try:
            return await self._execute_flow(name, start)
        except RuntimeFlowError as e:
            logger.error("Flow {} failed in {}: {}", name, e.flow or name, e)
            raise

    def run(self, name: str, payload: Optional[Mapping[str, Any]] = None) -> Any:
        """Blocking wrapper around :meth:`execute_flow`."""
        return asyncio.run(self.execute_flow(name, payload))

    async def execute_route(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, Any]] = None,
        body: Any = None,
    ) -> Any:
        """Run the flow mapped to ``METHOD path`` with a request-shaped payload."""
        match = self.routes.lookup(method, path)
        if match is None:
            raise RouteNotFoundError(method, path)
        route, params = match
        self.log(f"[route] {route.method} {path} -> {route.flow}")
        payload = request_payload(method, path, headers=headers, query=query, params=params, body=body)
        return await self.execute_flow(route.flow, payload)

    # ---------- Dispatch ----------

    async def _execute_flow(self, name: str, payload: Any) -> Any:
        self.log(f"[flow] Executing flow: {name}")
        self.metrics["flows"] += 1
        with self.tracer.start_as_current_span(f"flow:{name}"):
            try:
                document = self.loader.load(name)
                return await self._execute_document(document, payload, name)
            except RuntimeFlowError as e:
                if e.flow is None:
                    e.flow = name
                raise

    async def _execute_document(self, document: FlowDocument, payload: Any, flow: str) -> Any:
        if isinstance(document, ConnectorFlow):
            return await self.execute_connector(document, payload, flow)
        if isinstance(document, DecisionFlow):
            return await self.execute_decision(document, payload, flow)
        if isinstance(document, SequenceFlow):
            return await self.execute_sequence(document, payload, flow)
        raise InvalidFlowError(f'Unknown flow type for "{flow}"', flow=flow)

    async def execute_connector(self, document: ConnectorFlow, payload: Any, flow: str) -> Any:
        connector_type = document.connector_type or infer_connector_type(document.name)
        self.log(f"[connector] {flow} -> {connector_type}")
        # resolution failures are reported as-is, not as execution failures
        self.registry.resolve(connector_type)
        self.metrics["connectors"] += 1
        t0 = time.perf_counter()
        with self.tracer.start_as_current_span(f"connector:{connector_type}"):
            try:
                call = self.registry.execute(connector_type, document.config, payload)
                if self.connector_timeout:
                    result = await asyncio.wait_for(call, self.connector_timeout)
                else:
                    result = await call
            except RuntimeFlowError:
                raise
            except asyncio.TimeoutError as e:
                raise ConnectorTimeoutError(
                    connector_type,
                    TimeoutError(f"no result after {self.connector_timeout}s"),
                    flow=flow,
                ) from e
            except Exception as e:
                raise ConnectorExecutionError(connector_type, e, flow=flow) from e
            finally:
                dt_ms = int((time.perf_counter() - t0) * 1000)
                self.metrics["connector_ms"][connector_type] = dt_ms
        return result

    async def execute_decision(self, document: DecisionFlow, payload: Any, flow: str) -> Any:
        self.metrics["decisions"] += 1
        for condition in document.conditions:
            # a broken condition is logged and counts as false
            if evaluate_condition(condition.when, payload):
                self.log(f"[decision] {flow}: condition matched, going to: {condition.go_to}")
                return await self._execute_flow(condition.go_to, payload)
        if document.default:
            self.log(f"[decision] {flow}: no condition matched, using default: {document.default}")
            return await self._execute_flow(document.default, payload)
        raise NoMatchError("No decision conditions matched and no default path specified", flow=flow)

    async def execute_sequence(self, document: SequenceFlow, payload: Any, flow: str) -> Any:
        current = payload
        for step in document.steps:
            match step:
                case FlowReference(name=target) | FieldReference(name=target):
                    current = await self._execute_flow(target, current)
                case InlineConnector(connector=inline):
                    current = await self.execute_connector(inline, current, flow)
                case InlineDecision(decision=inline):
                    current = await self.execute_decision(inline, current, flow)
                case _:
                    raise UnknownStepError(step, flow=flow)
        return current

    def recent_logs(self, limit: Optional[int] = None) -> List[str]:
        lines = list(self.console)
        return lines[-limit:] if limit else lines
