from enum import Enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from .schemas import ConnectorFlow, DecisionFlow


class FlowKind(str, Enum):
    Sequence = "sequence"
    Connector = "connector"
    Decision = "decision"


# Keys a document uses to name itself or point at other documents
NAME_KEY = "name"
FLOW_NAME_KEY = "flow-reference-name"
SUBFLOW_NAME_KEY = "subflow-reference-name"
JUMP_KEY = "flowReference"

INLINE_TYPES = frozenset({FlowKind.Connector.value, FlowKind.Decision.value})


# ─── Sequence steps ──────────────────────────────────────────────
# A step's shape is decided once when the document is parsed.

@dataclass(frozen=True)
class FlowReference:
    """Bare string step: run the named flow."""
    name: str


@dataclass(frozen=True)
class FieldReference:
    """Object step naming its target through a reference field."""
    name: str
    field: str = SUBFLOW_NAME_KEY


@dataclass(frozen=True)
class InlineConnector:
    connector: "ConnectorFlow"


@dataclass(frozen=True)
class InlineDecision:
    decision: "DecisionFlow"


Step = Union[FlowReference, FieldReference, InlineConnector, InlineDecision]
