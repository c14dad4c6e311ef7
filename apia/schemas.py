"""Pydantic models for APIA flow documents.

Raw JSON documents are parsed once into these models when they are loaded.
Sequence steps become the tagged variants of :mod:`apia.types`, so the
interpreter never has to sniff the raw shape again.
"""

from __future__ import annotations
from typing import Any, ClassVar, Dict, List, Mapping, Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import InvalidFlowError, UnknownStepError
from .types import (
    FLOW_NAME_KEY,
    INLINE_TYPES,
    NAME_KEY,
    SUBFLOW_NAME_KEY,
    FieldReference,
    FlowKind,
    FlowReference,
    InlineConnector,
    InlineDecision,
    Step,
)


class Condition(BaseModel):
    """One branch of a decision: run `goTo` when `when` holds."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    when: str
    go_to: str = Field(alias="goTo")

    @field_validator("when", mode="before")
    @classmethod
    def coerce_expression(cls, v: Any) -> str:
        """Allow literal booleans and numbers as conditions."""
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, (int, float)):
            return str(v)
        return v


class FlowDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True)

    kind: ClassVar[FlowKind]
    name: str = ""


class ConnectorFlow(FlowDocument):
    kind: ClassVar[FlowKind] = FlowKind.Connector

    connector_type: Optional[str] = Field(default=None, alias="connectorType")
    config: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("config", mode="before")
    @classmethod
    def ensure_dict(cls, v: Any) -> Dict[str, Any]:
        if v is None:
            return {}
        return v


class DecisionFlow(FlowDocument):
    kind: ClassVar[FlowKind] = FlowKind.Decision

    conditions: List[Condition] = Field(default_factory=list)
    default: Optional[str] = None


class SequenceFlow(FlowDocument):
    kind: ClassVar[FlowKind] = FlowKind.Sequence
    model_config = ConfigDict(populate_by_name=True, extra="allow", frozen=True, arbitrary_types_allowed=True)

    steps: List[Any] = Field(default_factory=list)


def declared_name(data: Mapping[str, Any]) -> str:
    """The name a document gives itself (`name`, else `flow-reference-name`)."""
    for key in (NAME_KEY, FLOW_NAME_KEY):
        value = data.get(key)
        if isinstance(value, str) and value:
            return value
    return ""


def is_inline(data: Any) -> bool:
    return isinstance(data, Mapping) and data.get("type") in INLINE_TYPES


def parse_step(raw: Any, flow: Optional[str] = None) -> Step:
    if isinstance(raw, str):
        return FlowReference(raw)
    if isinstance(raw, Mapping):
        kind = raw.get("type")
        if kind == FlowKind.Connector.value:
            return InlineConnector(_build(ConnectorFlow, raw, "", flow))
        if kind == FlowKind.Decision.value:
            return InlineDecision(_build(DecisionFlow, raw, "", flow))
        if not kind:
            for key in (SUBFLOW_NAME_KEY, FLOW_NAME_KEY):
                target = raw.get(key)
                if isinstance(target, str) and target:
                    return FieldReference(target, key)
    raise UnknownStepError(raw, flow=flow)


def parse_document(data: Any, name: Optional[str] = None) -> FlowDocument:
    """Parse a raw JSON document into its flow model.

    `name` is the masterlist name and is used when the document declares none.
    """
    label = name or (declared_name(data) if isinstance(data, Mapping) else "") or "<anonymous>"
    if not isinstance(data, Mapping):
        raise InvalidFlowError(f'Flow "{label}" must be a JSON object', flow=label)
    kind = data.get("type")
    if kind == FlowKind.Connector.value:
        return _build(ConnectorFlow, data, name, label)
    if kind == FlowKind.Decision.value:
        return _build(DecisionFlow, data, name, label)
    subflows = data.get("subflows")
    if isinstance(subflows, Mapping):
        # mapping form: values are bare flow names, run in insertion order
        subflows = list(subflows.values())
    if isinstance(subflows, list):
        steps = [parse_step(raw, flow=label) for raw in subflows]
        fields = {k: v for k, v in data.items() if k not in ("subflows", NAME_KEY)}
        return _build(SequenceFlow, {**fields, "steps": steps}, declared_name(data) or name, label)
    raise InvalidFlowError(f'Unknown flow type for "{label}"', flow=label)


def _build(model: type, data: Mapping[str, Any], name: Optional[str], flow: Optional[str]):
    fields = dict(data)
    fields.pop("type", None)
    fields[NAME_KEY] = declared_name(data) or name or ""
    try:
        return model.model_validate(fields)
    except ValidationError as e:
        raise InvalidFlowError(f'Flow "{flow}" is malformed: {e}', flow=flow) from e
