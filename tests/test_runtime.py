"""Tests for the flow interpreter."""

import asyncio
import types

import pytest

from apia.errors import (
    ConnectorExecutionError,
    ConnectorNotFoundError,
    ConnectorTimeoutError,
    FlowNotFoundError,
    InferenceError,
    NoMatchError,
    RouteNotFoundError,
    UnknownStepError,
)


def _set(name, **fields):
    return {"name": name, "type": "connector", "connectorType": "setPayload", "config": {"fields": fields}}


def _decision(name, conditions, default=None):
    doc = {"name": name, "type": "decision", "conditions": [{"when": w, "goTo": g} for w, g in conditions]}
    if default:
        doc["default"] = default
    return doc


class TestScenarios:

    def test_greet(self, make_runtime, greet_flow):
        rt = make_runtime(flows={"greet": greet_flow})
        assert rt.run("greet", {}) == {"message": "hello"}

    def test_found_and_not_found(self, make_runtime):
        rt = make_runtime(flows={
            "lookup": _decision("lookup", [("payload.id > 0", "found")], default="notFound"),
            "found": _set("found", result="found"),
            "notFound": _set("notFound", result="notFound"),
        })
        assert rt.run("lookup", {"id": 5})["result"] == "found"
        assert rt.run("lookup", {"id": -1})["result"] == "notFound"


class TestSequence:

    def test_payload_threads_through_steps(self, make_runtime):
        flows = {f"step{i}": _set(f"step{i}", **{f"k{i}": i}) for i in range(5)}
        flows["main"] = {"name": "main", "subflows": [f"step{i}" for i in range(5)]}
        rt = make_runtime(flows=flows)
        assert rt.run("main", {"start": True}) == {"start": True, "k0": 0, "k1": 1, "k2": 2, "k3": 3, "k4": 4}

    def test_later_steps_see_earlier_writes(self, make_runtime):
        rt = make_runtime(flows={
            "main": {"name": "main", "subflows": ["first", "second"]},
            "first": _set("first", value="one"),
            "second": {"name": "second", "type": "connector", "connectorType": "transform",
                       "config": {"fields": {"echo": "payload.value + '!'"}}},
        })
        assert rt.run("main", {})["echo"] == "one!"

    def test_all_step_variants(self, make_runtime):
        rt = make_runtime(
            flows={"main": {"name": "main", "subflows": [
                "a",
                {"subflow-reference-name": "b"},
                {"type": "connector", "connectorType": "setPayload", "config": {"fields": {"inline": True}}},
                {"type": "decision", "conditions": [{"when": "payload.inline", "goTo": "c"}]},
            ]}},
            subflows={"a": _set("a", a=1), "b": _set("b", b=2), "c": _set("c", c=3)},
        )
        assert rt.run("main", {}) == {"a": 1, "b": 2, "inline": True, "c": 3}

    def test_nested_sequences_are_depth_first(self, make_runtime):
        rt = make_runtime(flows={
            "outer": {"name": "outer", "subflows": ["inner", "last"]},
            "inner": {"name": "inner", "subflows": ["x"]},
            "x": {"name": "x", "type": "connector", "connectorType": "transform",
                  "config": {"fields": {"order": "'x'"}}},
            "last": {"name": "last", "type": "connector", "connectorType": "transform",
                     "config": {"fields": {"order": "payload.order + ',last'"}}},
        })
        assert rt.run("outer", {})["order"] == "x,last"

    def test_empty_sequence_returns_payload(self, make_runtime):
        rt = make_runtime(flows={"noop": {"name": "noop", "subflows": []}})
        assert rt.run("noop", {"a": 1}) == {"a": 1}

    def test_unknown_step_fails_before_any_step_runs(self, make_runtime):
        calls = []
        rt = make_runtime(flows={
            "main": {"name": "main", "subflows": ["spy", {"what": "is this"}]},
            "spy": {"name": "spy", "type": "connector", "connectorType": "spy", "config": {}},
        })
        rt.registry.register("spy", types.SimpleNamespace(execute=lambda c, p: calls.append(p) or p))
        with pytest.raises(UnknownStepError) as exc:
            rt.run("main", {})
        assert calls == []
        assert exc.value.flow == "main"


class TestDecision:

    def test_first_match_wins(self, make_runtime):
        rt = make_runtime(flows={
            "pick": _decision("pick", [("payload.n > 0", "first"), ("payload.n > 1", "second")], default="fallback"),
            "first": _set("first", first=True),
            "second": _set("second", second=True),
            "fallback": _set("fallback", fallback=True),
        })
        assert rt.run("pick", {"n": 5}) == {"n": 5, "first": True}

    def test_broken_condition_is_skipped(self, make_runtime):
        rt = make_runtime(flows={
            "pick": _decision("pick", [("payload.user.id > 0", "first"), ("payload.fallback", "second")]),
            "first": _set("first", picked="first"),
            "second": _set("second", picked="second"),
        })
        assert rt.run("pick", {"fallback": True})["picked"] == "second"

    def test_no_match_without_default(self, make_runtime):
        rt = make_runtime(flows={
            "pick": _decision("pick", [("false", "never")]),
            "never": _set("never"),
        })
        with pytest.raises(NoMatchError) as exc:
            rt.run("pick", {})
        assert "no default path specified" in str(exc.value)
        assert exc.value.flow == "pick"


class TestConnectors:

    def test_type_inferred_from_name(self, make_runtime):
        rt = make_runtime(flows={
            "set-payload-flag": {"name": "set-payload-flag", "type": "connector", "config": {"fields": {"flag": 1}}},
        })
        assert rt.run("set-payload-flag", {}) == {"flag": 1}

    def test_inference_failure(self, make_runtime):
        rt = make_runtime(flows={"greet": {"name": "greet", "type": "connector", "config": {}}})
        with pytest.raises(InferenceError):
            rt.run("greet", {})

    def test_unnamed_inline_connector_is_not_inferred_from_its_sequence(self, make_runtime):
        rt = make_runtime(flows={"http-handler": {"name": "http-handler", "subflows": [{"type": "connector", "config": {}}]}})
        with pytest.raises(InferenceError) as exc:
            rt.run("http-handler", {})
        assert exc.value.flow == "http-handler"
        assert rt.metrics["connectors"] == 0

    def test_unregistered_type(self, make_runtime):
        rt = make_runtime(flows={"db": {"name": "db", "type": "connector", "connectorType": "mysql", "config": {}}})
        with pytest.raises(ConnectorNotFoundError):
            rt.run("db", {})

    def test_custom_connector_from_source_tree(self, make_runtime):
        rt = make_runtime(
            flows={"call": {"name": "call", "type": "connector", "connectorType": "shout", "config": {"suffix": "!"}}},
            connectors={"shout": "def execute(config, payload):\n    return {'said': payload['word'].upper() + config['suffix']}\n"},
            global_config={"shout": {"suffix": "?"}},
        )
        assert rt.run("call", {"word": "hi"}) == {"said": "HI!"}

    def test_connector_failure_is_wrapped(self, make_runtime):
        rt = make_runtime(flows={"main": {"name": "main", "subflows": ["calc"]},
                                 "calc": {"name": "calc", "type": "connector", "connectorType": "transform", "config": {}}})
        with pytest.raises(ConnectorExecutionError) as exc:
            rt.run("main", {})
        assert exc.value.flow == "calc"
        assert isinstance(exc.value.__cause__, ValueError)
        assert 'Connector "transform" failed' in str(exc.value)

    def test_timeout(self, make_runtime):
        async def slow(config, payload):
            await asyncio.sleep(5)
            return payload

        rt = make_runtime(
            flows={"slow": {"name": "slow", "type": "connector", "connectorType": "slow", "config": {}}},
            connector_timeout=0.05,
        )
        rt.registry.register("slow", types.SimpleNamespace(execute=slow))
        with pytest.raises(ConnectorTimeoutError):
            rt.run("slow", {})

    def test_metrics(self, make_runtime, greet_flow):
        rt = make_runtime(flows={"greet": greet_flow})
        rt.run("greet", {})
        assert rt.metrics["flows"] == 1
        assert rt.metrics["connectors"] == 1
        assert "setPayload" in rt.metrics["connector_ms"]
        assert any("Executing flow: greet" in line for line in rt.recent_logs())


class TestIsolation:

    def test_caller_payload_is_not_mutated(self, make_runtime):
        rt = make_runtime(flows={"mutate": {"name": "mutate", "type": "connector", "connectorType": "mutator", "config": {}}})

        def mutator(config, payload):
            payload["nested"]["changed"] = True
            return payload

        rt.registry.register("mutator", types.SimpleNamespace(execute=mutator))
        original = {"nested": {"changed": False}}
        result = rt.run("mutate", original)
        assert original == {"nested": {"changed": False}}
        assert result["nested"]["changed"] is True

    def test_concurrent_invocations(self, make_runtime):
        rt = make_runtime(flows={
            "main": {"name": "main", "subflows": ["wait", "tag"]},
            "wait": {"name": "wait", "type": "connector", "connectorType": "pause", "config": {}},
            "tag": {"name": "tag", "type": "connector", "connectorType": "transform",
                    "config": {"fields": {"tag": "'done-' + payload.id"}}},
        })

        async def pause(config, payload):
            await asyncio.sleep(0.01)
            return payload

        rt.registry.register("pause", types.SimpleNamespace(execute=pause))

        async def run_all():
            return await asyncio.gather(*(rt.execute_flow("main", {"id": i}) for i in range(10)))

        results = asyncio.run(run_all())
        assert [r["tag"] for r in results] == [f"done-{i}" for i in range(10)]


class TestErrors:

    def test_unknown_flow(self, make_runtime, greet_flow):
        rt = make_runtime(flows={"greet": greet_flow})
        with pytest.raises(FlowNotFoundError):
            rt.run("nope", {})


class TestRoutes:

    def test_execute_route(self, make_runtime):
        rt = make_runtime(
            flows={
                "get-user": {"name": "get-user", "subflows": ["http-listener", "answer"]},
                "http-listener": {"name": "http-listener", "type": "connector", "config": {}},
                "answer": {"name": "answer", "type": "connector", "connectorType": "transform",
                           "config": {"fields": {"response.body": "payload.params.id"}}},
            },
            router={"routes": [{"method": "GET", "path": "/users/:id", "flow": "get-user"}]},
        )
        result = asyncio.run(rt.execute_route("get", "/users/42"))
        assert result["response"]["body"] == "42"
        assert result["request"]["method"] == "GET"

    def test_unknown_route(self, make_runtime, greet_flow):
        rt = make_runtime(flows={"greet": greet_flow})
        with pytest.raises(RouteNotFoundError):
            asyncio.run(rt.execute_route("GET", "/nowhere"))
