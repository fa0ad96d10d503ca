"""Tests for module creation and composition (use/derive/decorate/pipe)."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from typing import Any

import pytest
from pydantic import BaseModel, ConfigDict

import modweave
from modweave import ConfigurationError, CompositionError, Module, ModuleTable, create

# ------------------------------------------------------------------
# create
# ------------------------------------------------------------------


class TestCreate:
    def test_non_empty_name_succeeds(self) -> None:
        module = create("counter", {"count": 0}, {"step": 2})

        assert isinstance(module, Module)
        assert module.name == "counter"
        assert module.state.get()["count"] == 0
        assert module.config["step"] == 2

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_missing_name_fails_before_allocation(self, name: Any) -> None:
        table = ModuleTable()

        with pytest.raises(ConfigurationError, match="must have a name"):
            create(name, {"count": 0}, table=table)

        assert len(table) == 0

    def test_name_is_required_positionally(self) -> None:
        with pytest.raises(ConfigurationError):
            create()

    def test_name_is_stripped(self) -> None:
        assert create("  svc  ").name == "svc"

    def test_config_is_frozen(self) -> None:
        config = {"retries": 3}
        module = create("svc", config=config)
        config["retries"] = 5

        assert module.config["retries"] == 3
        with pytest.raises(TypeError):
            module.config["retries"] = 9  # type: ignore[index]

    def test_model_config_kept_as_given(self) -> None:
        class Settings(BaseModel):
            model_config = ConfigDict(frozen=True)

            url: str = "http://localhost"

        settings = Settings()
        module = create("svc", config=settings)

        assert module.config is settings

    def test_modules_sharing_a_table_get_distinct_ids(self) -> None:
        table = ModuleTable()
        first = create("a", table=table)
        second = create("b", table=table)

        assert first.id != second.id
        assert first in table and second in table
        assert len(table) == 2

    def test_version_is_exposed(self) -> None:
        assert isinstance(modweave.__version__, str)


# ------------------------------------------------------------------
# decorate
# ------------------------------------------------------------------


def test_decorate_is_idempotent_for_identical_values() -> None:
    module = create("svc").decorate("greeting", "hello").decorate("greeting", "hello")

    assert module.greeting == "hello"
    assert module.api == {"greeting": "hello"}


def test_decorate_with_new_value_overwrites() -> None:
    module = create("svc").decorate("greeting", "hello").decorate("greeting", "hi")

    assert module.greeting == "hi"


def test_missing_entry_raises_attribute_error() -> None:
    module = create("svc")

    with pytest.raises(AttributeError, match="no entry 'nope'"):
        module.nope  # noqa: B018


# ------------------------------------------------------------------
# derive
# ------------------------------------------------------------------


def test_derive_composes_left_to_right() -> None:
    module = (
        create("math")
        .derive(lambda ctx: {"double": lambda x: x * 2})
        .derive(lambda ctx: {"quad": lambda x: ctx.double(ctx.double(x))})
    )

    assert module.quad(3) == 12


def test_derive_context_exposes_state_config_and_entries() -> None:
    captured: dict[str, Any] = {}

    def factory(ctx: modweave.ModuleContext) -> dict[str, Any]:
        captured["count"] = ctx.state.get()["count"]
        captured["step"] = ctx.config["step"]
        captured["name"] = ctx.name
        captured["keys"] = sorted(ctx)
        return {"increment": lambda: ctx.state.set({"count": ctx.state.get()["count"] + ctx.config["step"]})}

    module = create("counter", {"count": 1}, {"step": 5}).decorate("label", "c").derive(factory)

    assert captured == {"count": 1, "step": 5, "name": "counter", "keys": ["label"]}
    assert callable(module.increment)


@pytest.mark.asyncio
async def test_derived_method_updates_state() -> None:
    module = create("counter", {"count": 0}).derive(
        lambda ctx: {"increment": lambda: ctx.state.set({"count": ctx.state.get()["count"] + 1})}
    )
    seen: list[tuple[int, int]] = []
    module.watch("count", lambda new, old: seen.append((new, old)))

    module.increment()
    await asyncio.sleep(0)

    assert module.state.get()["count"] == 1
    assert seen == [(1, 0)]


def test_derive_runs_factory_once() -> None:
    calls: list[int] = []

    def factory(ctx: Any) -> dict[str, Any]:
        calls.append(1)
        return {"value": 1}

    module = create("svc").derive(factory)
    assert module.value == 1
    assert module.value == 1
    assert calls == [1]


def test_derive_must_return_mapping() -> None:
    with pytest.raises(CompositionError, match="must return a mapping"):
        create("svc").derive(lambda ctx: 42)


def test_derive_errors_propagate_unmodified() -> None:
    def factory(ctx: Any) -> dict[str, Any]:
        raise KeyError("missing")

    with pytest.raises(KeyError):
        create("svc").derive(factory)


def test_method_body_errors_propagate_to_caller() -> None:
    def explode() -> None:
        raise ValueError("bad input")

    module = create("svc").decorate("explode", explode)

    with pytest.raises(ValueError, match="bad input"):
        module.explode()


def test_api_is_a_read_only_snapshot() -> None:
    module = create("svc").decorate("a", 1)
    api = module.api
    module.decorate("b", 2)

    assert dict(api) == {"a": 1}
    assert dict(module.api) == {"a": 1, "b": 2}
    with pytest.raises(TypeError):
        api["c"] = 3  # type: ignore[index]


def test_entry_colliding_with_context_attribute_reachable_by_key() -> None:
    module = create("svc").decorate("flow", "shadowed")
    ctx = module.context()

    assert ctx["flow"] == "shadowed"
    assert ctx.flow is modweave.flow
    assert module.flow == "shadowed"


@pytest.mark.parametrize("name", ["use", "stop", "context", "api", "state", "name"])
def test_builder_names_are_reserved(name: str) -> None:
    module = create("svc")

    with pytest.raises(CompositionError, match="reserved") as exc_info:
        module.decorate(name, 1)

    assert exc_info.value.name == name
    assert exc_info.value.module == "svc"
    assert callable(module.use)


def test_derive_with_reserved_name_is_rejected() -> None:
    with pytest.raises(CompositionError, match="reserved"):
        create("svc").derive(lambda ctx: {"use": 1})


def test_entries_named_like_mapping_methods_reach_the_context() -> None:
    seen: dict[str, Any] = {}

    def capture(ctx: Any) -> dict[str, Any]:
        seen["items"] = ctx.items
        seen["get"] = ctx.get
        return {}

    create("svc").decorate("items", ("a", "b")).decorate("get", "fetched").derive(capture)

    assert seen == {"items": ("a", "b"), "get": "fetched"}


def test_derive_with_non_string_key_registers_nothing() -> None:
    module = create("svc")

    with pytest.raises(CompositionError) as exc_info:
        module.derive(lambda ctx: {"ok": lambda: 1, 1: lambda: 2})

    assert exc_info.value.module == "svc"
    assert "ok" not in module
    assert dict(module.api) == {}


# ------------------------------------------------------------------
# use
# ------------------------------------------------------------------


def test_use_copies_entries_from_another_module() -> None:
    module_a = create("moduleA").derive(lambda ctx: {"module_a": SimpleNamespace(value="Module A")})
    module_b = (
        create("moduleB")
        .use(module_a)
        .derive(lambda ctx: {"get_value": lambda: f"Module B depends on {ctx.module_a.value}"})
    )

    assert module_b.get_value() == "Module B depends on Module A"
    assert module_b.module_a.value == "Module A"


def test_use_copies_only_entries_visible_at_use_time() -> None:
    source = create("source").decorate("early", 1)
    target = create("target").use(source)
    source.decorate("late", 2)

    assert "early" in target
    assert "late" not in target


def test_use_accepts_mappings_models_and_objects() -> None:
    class Clock:
        def now(self) -> int:
            return 42

        def _private(self) -> None:  # pragma: no cover
            raise AssertionError

    class Limits(BaseModel):
        max_items: int = 10

    module = create("svc").use({"answer": 41}).use(Clock()).use(Limits())

    assert module.answer == 41
    assert module.now() == 42
    assert module.max_items == 10
    assert "_private" not in module


def test_use_none_is_a_composition_error() -> None:
    with pytest.raises(CompositionError):
        create("svc").use(None)


def test_multiple_dependencies_are_merged() -> None:
    module_a = create("a").decorate("value_a", "A")
    module_b = create("b").decorate("value_b", "B")
    module_c = (
        create("c")
        .use(module_a)
        .use(module_b)
        .derive(lambda ctx: {"both": lambda: ctx.value_a + ctx.value_b})
    )

    assert module_c.both() == "AB"


# ------------------------------------------------------------------
# pipe
# ------------------------------------------------------------------


def test_pipe_registers_callable_with_pipe_helper() -> None:
    module = (
        create("text")
        .decorate("strip", str.strip)
        .pipe("normalize", lambda ctx: lambda value: ctx.pipe(value, ctx.strip, str.lower))
    )

    assert module.normalize("  HeLLo ") == "hello"


def test_pipe_flow_helper_composes_functions() -> None:
    module = create("math").pipe("add_then_double", lambda ctx: ctx.flow(lambda a, b: a + b, lambda x: x * 2))

    assert module.add_then_double(2, 3) == 10


def test_pipe_rejects_non_callable() -> None:
    with pytest.raises(CompositionError) as exc_info:
        create("svc").pipe("broken", lambda ctx: "not callable")

    assert exc_info.value.name == "broken"
    assert exc_info.value.module == "svc"


def test_async_methods_are_not_awaited_by_runtime() -> None:
    async def fetch() -> str:
        return "data"

    module = create("svc").pipe("fetch", lambda ctx: fetch)
    pending = module.fetch()

    assert asyncio.iscoroutine(pending)
    assert asyncio.run(pending) == "data"
