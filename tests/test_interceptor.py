"""Tests for call interception and prompt substitution."""

import asyncio
from dataclasses import dataclass
from unittest.mock import AsyncMock, MagicMock

import pytest

from promptlens.core.exceptions import DeliveryFailureError, InvalidInputError
from promptlens.experiments import (
    CallInterceptor,
    Experiment,
    ExperimentRegistry,
    ExperimentResult,
    PayloadShape,
    VariantSelector,
    classify_payload,
    experiment_decorator,
    prompt_experiment,
    resolve_model,
    substitute_prompt,
)
from promptlens.utils.hashing import hash_prompt, hash_user_id


@pytest.fixture
def selector():
    return VariantSelector(ExperimentRegistry())


def chat_request(content="old"):
    return {
        "model": "gpt-4",
        "messages": [
            {"role": "system", "content": "You are helpful."},
            {"role": "user", "content": content},
        ],
    }


class TestExperimentDefinition:
    """Test experiment validation."""

    def test_generated_id(self):
        first = Experiment(prompt_variants=["a"])
        second = Experiment(prompt_variants=["a"])
        assert first.id.startswith("exp_")
        assert first.id != second.id

    def test_requires_variants(self):
        with pytest.raises(InvalidInputError):
            Experiment(prompt_variants=[])

    def test_weighted_requires_matching_weights(self):
        with pytest.raises(InvalidInputError):
            Experiment(prompt_variants=["a", "b"], distribution="weighted")
        with pytest.raises(InvalidInputError):
            Experiment(prompt_variants=["a", "b"], distribution="weighted", weights=[1])

    def test_weighted_requires_positive_weights(self):
        with pytest.raises(InvalidInputError):
            Experiment(prompt_variants=["a", "b"], distribution="weighted", weights=[1, 0])

    def test_weights_only_with_weighted_mode(self):
        with pytest.raises(InvalidInputError):
            Experiment(prompt_variants=["a", "b"], weights=[1, 1])


class TestPayloadSubstitution:
    """Test prompt substitution into call arguments."""

    def test_classify(self):
        assert classify_payload([{"role": "user", "content": "x"}]) is PayloadShape.MESSAGE_LIST
        assert classify_payload({"messages": []}) is PayloadShape.OBJECT_WITH_MESSAGES
        assert classify_payload({"prompt": "x"}) is PayloadShape.OBJECT_WITH_PROMPT
        assert classify_payload("plain text") is PayloadShape.UNRECOGNIZED
        assert classify_payload(None) is PayloadShape.UNRECOGNIZED

    def test_message_list_replaces_first_user_message(self):
        messages = [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "old", "name": "alice"},
            {"role": "user", "content": "second"},
        ]
        shape, args, kwargs = substitute_prompt((messages,), {}, "new")

        assert shape is PayloadShape.MESSAGE_LIST
        assert args[0] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "new", "name": "alice"},
            {"role": "user", "content": "second"},
        ]
        # Caller's list is untouched
        assert messages[1]["content"] == "old"

    def test_object_with_messages(self):
        request = chat_request()
        shape, args, _ = substitute_prompt((request, "extra"), {}, "new")

        assert shape is PayloadShape.OBJECT_WITH_MESSAGES
        assert args[0]["messages"][1]["content"] == "new"
        assert args[0]["messages"][0] == {"role": "system", "content": "You are helpful."}
        assert args[0]["model"] == "gpt-4"
        assert args[1] == "extra"
        assert request["messages"][1]["content"] == "old"

    def test_object_with_prompt(self):
        shape, args, _ = substitute_prompt(({"prompt": "old", "max_tokens": 5},), {}, "new")
        assert shape is PayloadShape.OBJECT_WITH_PROMPT
        assert args[0] == {"prompt": "new", "max_tokens": 5}

    def test_keyword_arguments_are_the_request(self):
        shape, args, kwargs = substitute_prompt((), chat_request(), "new")
        assert shape is PayloadShape.OBJECT_WITH_MESSAGES
        assert args == ()
        assert kwargs["messages"][1]["content"] == "new"
        assert kwargs["model"] == "gpt-4"

    def test_unrecognized_passes_through(self):
        args_in = ("just a string",)
        kwargs_in = {"temperature": 0.2}
        shape, args, kwargs = substitute_prompt(args_in, kwargs_in, "new")
        assert shape is PayloadShape.UNRECOGNIZED
        assert args is args_in
        assert kwargs is kwargs_in

    def test_no_arguments(self):
        shape, args, kwargs = substitute_prompt((), {}, "new")
        assert shape is PayloadShape.UNRECOGNIZED
        assert (args, kwargs) == ((), {})


class TestModelResolution:
    """Test best-effort model labelling."""

    def test_from_first_argument(self):
        assert resolve_model(({"model": "gpt-4"},), {}) == "gpt-4"

    def test_from_request_object_attribute(self):
        @dataclass
        class ChatRequest:
            model: str
            prompt: str

        assert resolve_model((ChatRequest(model="gpt-4o-mini", prompt="hi"),), {}) == "gpt-4o-mini"

    def test_from_keyword(self):
        assert resolve_model((), {"model": "gpt-4o"}) == "gpt-4o"

    def test_from_string_second_argument(self):
        assert resolve_model(([], "claude-3"), {}) == "claude-3"

    def test_default_then_unknown(self):
        assert resolve_model(("text",), {}, default="fallback") == "fallback"
        assert resolve_model(("text",), {}) == "unknown"
        assert resolve_model((), {}) == "unknown"

    def test_never_raises(self):
        class Exploding(dict):
            def get(self, key, default=None):
                raise RuntimeError("boom")

        assert resolve_model((Exploding(),), {}) == "unknown"


class TestCallInterceptor:
    """Test the experiment wrapper end to end."""

    @pytest.mark.asyncio
    async def test_round_robin_scenario(self, selector):
        seen = []

        async def call(request):
            seen.append(request["messages"][1]["content"])
            return {"text": "ok"}

        wrapped = prompt_experiment(
            call,
            Experiment(id="e1", prompt_variants=["A", "B"], distribution="round-robin"),
            selector=selector,
        )

        results = [await wrapped(chat_request()) for _ in range(3)]

        assert seen == ["A", "B", "A"]
        assert [r.experiment.variant_index for r in results] == [0, 1, 0]
        assert [r.experiment.prompt_variant for r in results] == ["A", "B", "A"]
        assert all(r.experiment.id == "e1" for r in results)
        assert results[0].response == {"text": "ok"}

    @pytest.mark.asyncio
    async def test_sync_call(self, selector):
        def call(prompt_request):
            return prompt_request["prompt"].upper()

        wrapped = prompt_experiment(call, Experiment(prompt_variants=["hello"]), selector=selector)
        result = await wrapped({"prompt": "placeholder"})

        assert isinstance(result, ExperimentResult)
        assert result.response == "HELLO"

    @pytest.mark.asyncio
    async def test_metric_record_contents(self, selector):
        call = AsyncMock(return_value="response")
        wrapped = prompt_experiment(
            call,
            Experiment(id="e2", prompt_variants=["one two three"]),
            selector=selector,
        )

        result = await wrapped(chat_request(), user_id="user-42")
        record = result.experiment.metrics

        assert record.experiment_id == "e2"
        assert record.prompt_hash == hash_prompt("one two three")
        assert record.model == "gpt-4"
        assert record.user_id == hash_user_id("user-42")
        assert record.latency_ms >= 0
        assert record.timestamp > 0
        assert record.custom_metrics["prompt_tokens_estimate"] == 4

        # The reserved keyword is not forwarded
        assert "user_id" not in call.call_args.kwargs

    @pytest.mark.asyncio
    async def test_user_rotation(self, selector):
        wrapped = prompt_experiment(
            AsyncMock(return_value=None),
            Experiment(id="e3", prompt_variants=["A", "B"]),
            selector=selector,
        )

        a1 = await wrapped(chat_request(), user_id="a")
        b1 = await wrapped(chat_request(), user_id="b")
        a2 = await wrapped(chat_request(), user_id="a")

        assert [a1.experiment.prompt_variant, b1.experiment.prompt_variant, a2.experiment.prompt_variant] == ["A", "A", "B"]
        assert selector.current_index("e3") == -1

    @pytest.mark.asyncio
    async def test_non_string_user_id(self, selector):
        call = AsyncMock(return_value="response")
        wrapped = prompt_experiment(
            call,
            Experiment(id="e-int", prompt_variants=["A", "B"]),
            selector=selector,
        )

        result = await wrapped({"prompt": "x"}, user_id=42)

        assert result.response == "response"
        assert result.experiment.metrics.user_id == hash_user_id("42")
        assert selector.registry.user_index("e-int", "42") == 0
        call.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_empty_user_id_rotates_globally(self, selector):
        wrapped = prompt_experiment(
            AsyncMock(return_value=None),
            Experiment(id="e-empty", prompt_variants=["A", "B"]),
            selector=selector,
        )

        result = await wrapped(chat_request(), user_id="")

        assert selector.current_index("e-empty") == 0
        assert result.experiment.metrics.user_id is None

    @pytest.mark.asyncio
    async def test_enqueues_metric(self, selector):
        metrics = MagicMock()
        metrics.enqueue = AsyncMock()

        wrapped = prompt_experiment(
            AsyncMock(return_value="ok"),
            Experiment(prompt_variants=["A"]),
            selector=selector,
            metrics=metrics,
        )
        result = await wrapped(chat_request())
        await wrapped.wait_for_metrics()

        metrics.enqueue.assert_awaited_once_with(result.experiment.metrics)

    @pytest.mark.asyncio
    async def test_track_metrics_disabled(self, selector):
        metrics = MagicMock()
        metrics.enqueue = AsyncMock()

        wrapped = prompt_experiment(
            AsyncMock(return_value="ok"),
            Experiment(prompt_variants=["A"], track_metrics=False),
            selector=selector,
            metrics=metrics,
        )
        result = await wrapped(chat_request())
        await wrapped.wait_for_metrics()

        metrics.enqueue.assert_not_awaited()
        # The record is still reported on the result
        assert result.experiment.metrics.prompt_hash == hash_prompt("A")

    @pytest.mark.asyncio
    async def test_metric_failures_are_swallowed(self, selector):
        metrics = MagicMock()
        metrics.enqueue = AsyncMock(side_effect=DeliveryFailureError("down", requeued=10))

        wrapped = prompt_experiment(
            AsyncMock(return_value="ok"),
            Experiment(prompt_variants=["A"]),
            selector=selector,
            metrics=metrics,
        )
        result = await wrapped(chat_request())
        await wrapped.wait_for_metrics()

        assert result.response == "ok"
        assert metrics.enqueue.await_count == 1

    @pytest.mark.asyncio
    async def test_call_failure_propagates_without_metric(self, selector):
        metrics = MagicMock()
        metrics.enqueue = AsyncMock()

        class ProviderDown(Exception):
            pass

        wrapped = prompt_experiment(
            AsyncMock(side_effect=ProviderDown("503")),
            Experiment(prompt_variants=["A"]),
            selector=selector,
            metrics=metrics,
        )

        with pytest.raises(ProviderDown):
            await wrapped(chat_request())
        await wrapped.wait_for_metrics()

        metrics.enqueue.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_timeout_is_a_call_failure(self, selector):
        async def slow(request):
            await asyncio.sleep(1)

        wrapped = prompt_experiment(
            slow,
            Experiment(prompt_variants=["A"]),
            selector=selector,
            timeout=0.01,
        )

        with pytest.raises(asyncio.TimeoutError):
            await wrapped(chat_request())

    @pytest.mark.asyncio
    async def test_unrecognized_payload_still_runs(self, selector):
        call = AsyncMock(return_value="ok")
        wrapped = prompt_experiment(call, Experiment(prompt_variants=["A"]), selector=selector)

        result = await wrapped("free text", "gpt-4")

        call.assert_awaited_once_with("free text", "gpt-4")
        assert result.experiment.metrics.model == "gpt-4"

    @pytest.mark.asyncio
    async def test_experiment_model_label(self, selector):
        wrapped = prompt_experiment(
            AsyncMock(return_value="ok"),
            Experiment(prompt_variants=["A"], model="configured-model"),
            selector=selector,
        )
        result = await wrapped({"prompt": "x"})
        assert result.experiment.metrics.model == "configured-model"

    @pytest.mark.asyncio
    async def test_weighted_reports_picked_index(self, selector):
        wrapped = prompt_experiment(
            AsyncMock(return_value="ok"),
            Experiment(prompt_variants=["A", "B"], distribution="weighted", weights=[0.000001, 1000]),
            selector=selector,
        )
        result = await wrapped(chat_request())
        assert result.experiment.variant_index == 1
        assert result.experiment.prompt_variant == "B"


class TestExperimentDecorator:
    """Test decorator usage on functions and methods."""

    @pytest.mark.asyncio
    async def test_function(self, selector):
        @experiment_decorator(Experiment(id="dec", prompt_variants=["A", "B"]), selector=selector)
        async def ask(request):
            """Ask the model."""
            return request["prompt"]

        assert isinstance(ask, CallInterceptor)
        assert ask.__name__ == "ask"
        assert ask.experiment_id == "dec"
        assert (await ask({"prompt": ""})).response == "A"
        assert (await ask({"prompt": ""})).response == "B"

    @pytest.mark.asyncio
    async def test_method_uses_instance_queue(self, selector):
        queue = MagicMock()
        queue.enqueue = AsyncMock()

        class Service:
            def __init__(self):
                self.metrics_queue = queue
                self.calls = []

            @experiment_decorator(Experiment(id="svc", prompt_variants=["A", "B"]), selector=selector)
            async def explain(self, params):
                self.calls.append(params["messages"][1]["content"])
                return "done"

        service = Service()
        await service.explain(chat_request())
        await service.explain(chat_request())
        await Service.explain.wait_for_metrics()

        assert service.calls == ["A", "B"]
        assert queue.enqueue.await_count == 2
