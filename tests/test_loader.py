"""Tests for the flow loader and its read-through cache."""

import threading

import pytest

from apia.cache import ReadThroughCache
from apia.errors import DocumentError, FlowNotFoundError, InvalidFlowError
from apia.loader import FlowLoader, load_masterlist
from conftest import write_json


def _build_dir(tmp_path, docs):
    for name, doc in docs.items():
        write_json(tmp_path / "flows" / f"{name}.json", doc)
    write_json(tmp_path / "masterlist.json", {name: f"flows/{name}.json" for name in docs})
    return tmp_path


def test_missing_masterlist(tmp_path):
    with pytest.raises(DocumentError) as exc:
        load_masterlist(tmp_path)
    assert "Did you run the build?" in str(exc.value)


def test_load_and_cache(tmp_path, greet_flow):
    loader = FlowLoader(_build_dir(tmp_path, {"greet": greet_flow}))
    first = loader.load("greet")
    assert first.connector_type == "setPayload"
    assert loader.load("greet") is first
    assert loader.cached == 1
    assert "greet" in loader


def test_unknown_name(tmp_path, greet_flow):
    loader = FlowLoader(_build_dir(tmp_path, {"greet": greet_flow}))
    with pytest.raises(FlowNotFoundError) as exc:
        loader.load("nope")
    assert str(exc.value) == 'Flow "nope" not found in masterlist'


def test_missing_file(tmp_path, greet_flow):
    loader = FlowLoader(tmp_path, masterlist={"greet": "flows/greet.json"})
    with pytest.raises(FlowNotFoundError) as exc:
        loader.load("greet")
    assert "Flow file not found" in str(exc.value)


def test_failed_loads_are_not_cached(tmp_path, greet_flow):
    loader = FlowLoader(tmp_path, masterlist={"greet": "flows/greet.json"})
    with pytest.raises(FlowNotFoundError):
        loader.load("greet")
    write_json(tmp_path / "flows" / "greet.json", greet_flow)
    assert loader.load("greet").name == "greet"


def test_corrupt_document(tmp_path):
    (tmp_path / "flows").mkdir()
    (tmp_path / "flows" / "bad.json").write_text("{", encoding="utf-8")
    loader = FlowLoader(tmp_path, masterlist={"bad": "flows/bad.json"})
    with pytest.raises(InvalidFlowError):
        loader.load("bad")


class TestReadThroughCache:

    def test_first_insert_wins(self):
        cache = ReadThroughCache()
        assert cache.get_or_compute("k", lambda: "first") == "first"
        assert cache.get_or_compute("k", lambda: "second") == "first"

    def test_put_overwrites(self):
        cache = ReadThroughCache()
        cache.get_or_compute("k", lambda: 1)
        cache.put("k", 2)
        assert cache.get_or_compute("k", lambda: 3) == 2
        cache.discard("k")
        assert "k" not in cache

    def test_racing_threads_see_one_value(self):
        cache = ReadThroughCache()
        barrier = threading.Barrier(8)
        seen = []

        def compute():
            return object()

        def worker():
            barrier.wait()
            seen.append(cache.get_or_compute("shared", compute))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len({id(v) for v in seen}) == 1
        assert len(cache) == 1
