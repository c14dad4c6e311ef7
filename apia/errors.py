import json
from typing import Any, Iterable, Optional


class ApiaError(Exception):
    pass


# ---------- Build time ----------

class BuildError(ApiaError):
    pass


class DuplicateFlowError(BuildError):
    def __init__(self, name: str, first: str, second: str):
        self.name = name
        self.locations = (first, second)
        super().__init__(
            f'Duplicate JSON definition found: "{name}" exists in both "{first}" and "{second}"')


class EmptyIndexError(BuildError):
    pass


class UnresolvedReferenceError(BuildError):
    """Raised once with every reference that has no masterlist entry."""

    def __init__(self, missing: Iterable[str], source: str = "Referenced JSON files not found"):
        self.missing = sorted(set(missing))
        listed = ", ".join(f'"{name}.json"' for name in self.missing)
        super().__init__(f"{source}: {listed}")


class DocumentError(BuildError):
    pass


# ---------- Run time ----------

class RuntimeFlowError(ApiaError):
    """Fatal to the current call chain. `flow` names the flow being executed."""

    def __init__(self, message: str, flow: Optional[str] = None):
        super().__init__(message)
        self.flow = flow


class FlowNotFoundError(RuntimeFlowError):
    def __init__(self, name: str, message: Optional[str] = None):
        super().__init__(message or f'Flow "{name}" not found in masterlist', flow=name)
        self.name = name


class ConnectorNotFoundError(RuntimeFlowError):
    def __init__(self, connector_type: str):
        super().__init__(f'Connector module not found: "{connector_type}"')
        self.connector_type = connector_type


class ContractViolationError(RuntimeFlowError):
    def __init__(self, connector_type: str):
        super().__init__(f'Connector "{connector_type}" must export an execute function')
        self.connector_type = connector_type


class InferenceError(RuntimeFlowError):
    pass


class NoMatchError(RuntimeFlowError):
    pass


class UnknownStepError(RuntimeFlowError):
    def __init__(self, step: Any, flow: Optional[str] = None):
        super().__init__(f"Unknown subflow type: {_render(step)}", flow=flow)
        self.step = step


class InvalidFlowError(RuntimeFlowError):
    pass


class ConnectorExecutionError(RuntimeFlowError):
    def __init__(self, connector_type: str, cause: BaseException, flow: Optional[str] = None):
        super().__init__(f'Connector "{connector_type}" failed: {cause}', flow=flow)
        self.connector_type = connector_type


class ConnectorTimeoutError(ConnectorExecutionError):
    pass


def _render(value: Any) -> str:
    try:
        return json.dumps(value, sort_keys=True)
    except (TypeError, ValueError):
        return repr(value)


class ConditionError(ApiaError):
    """A decision condition could not be parsed or evaluated."""
    pass


class RouteNotFoundError(RuntimeFlowError):
    def __init__(self, method: str, path: str):
        super().__init__(f"Route not found: {method.upper()} {path}")
        self.method = method.upper()
        self.path = path
