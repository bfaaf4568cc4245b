"""
Unit tests for `core/dispatcher.py` – DispatchEngine ordering, fallback and memory behavior.

All providers are scripted fakes (see `tests/fakes.py`) so the tests exercise only the
dispatch control flow: the arithmetic short-circuit, transcript updates, the provider
ordering per intent, skipping unconfigured providers, per-attempt timeouts and per-session
serialization.
"""

import asyncio

import pytest
from prometheus_client import REGISTRY

from core.arithmetic import INVALID_EXPRESSION_REPLY
from core.classifier import KeywordIntentClassifier
from core.dispatcher import DispatchEngine, orderings_from_config
from services.session_store import InMemorySessionStore
from shared.errors import AllProvidersExhaustedError, ValidationError
from shared.models import ARITHMETIC_PROVIDER_ID, CompletionOptions, IntentTag, Role

from fakes import FakeProvider

PROMPT = "explain recursion in one line"


class EchoProvider(FakeProvider):
    """Replies with the latest user turn, after an optional delay."""

    async def _complete(self, transcript, options):
        self.calls.append(tuple(transcript))
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        return f"echo: {transcript[-1].content}"


class StubAnnotator:
    def __init__(self, label="joy", configured=True):
        self.label = label
        self.is_configured = configured
        self.texts = []

    async def annotate(self, text):
        self.texts.append(text)
        return self.label


def make_engine(providers, timeout_s=1.0, annotator=None, store=None):
    return DispatchEngine(
        store=store or InMemorySessionStore(),
        providers={p.provider_id: p for p in providers},
        classifier=KeywordIntentClassifier(),
        provider_timeout_s=timeout_s,
        annotator=annotator,
    )


# --- Arithmetic short-circuit -------------------------------------------------------------

@pytest.mark.asyncio
async def test_arithmetic_answer_skips_memory_and_providers():
    groq, gemini = FakeProvider("groq"), FakeProvider("gemini")
    engine = make_engine([groq, gemini])

    result = await engine.dispatch("2 + 2", "s-1")

    assert result.reply == "Answer: 4"
    assert result.provider_id == ARITHMETIC_PROVIDER_ID
    assert result.session_id == "s-1"
    assert groq.call_count == 0 and gemini.call_count == 0
    assert "s-1" not in engine.store


@pytest.mark.asyncio
async def test_invalid_arithmetic_is_a_reply_not_an_error():
    groq = FakeProvider("groq")
    engine = make_engine([groq])

    result = await engine.dispatch("2 + (")

    assert result.reply == INVALID_EXPRESSION_REPLY
    assert result.provider_id == ARITHMETIC_PROVIDER_ID
    assert result.session_id
    assert groq.call_count == 0
    assert len(engine.store) == 0


# --- Provider fallback -------------------------------------------------------------------

@pytest.mark.asyncio
async def test_first_provider_success_stops_the_chain():
    groq = FakeProvider("groq", reply="Recursion is a function calling itself.")
    gemini = FakeProvider("gemini")
    engine = make_engine([groq, gemini])

    result = await engine.dispatch(PROMPT, "s-1")

    assert result.reply == "Recursion is a function calling itself."
    assert result.provider_id == "groq"
    assert gemini.call_count == 0
    transcript = engine.store.get("s-1")
    assert [t.role for t in transcript] == [Role.USER, Role.ASSISTANT]
    assert transcript[1].content == "Recursion is a function calling itself."


@pytest.mark.asyncio
async def test_fallback_after_first_provider_times_out():
    groq = FakeProvider("groq", error=asyncio.TimeoutError())
    gemini = FakeProvider("gemini", reply="X")
    engine = make_engine([groq, gemini])

    result = await engine.dispatch(PROMPT, "s-1")

    assert result.reply == "X"
    assert result.provider_id == "gemini"
    assert groq.call_count == 1
    assert [t.role for t in engine.store.get("s-1")] == [Role.USER, Role.ASSISTANT]


@pytest.mark.asyncio
async def test_slow_provider_is_bounded_by_engine_timeout():
    groq = FakeProvider("groq", reply="late", delay_s=5)
    gemini = FakeProvider("gemini", reply="X")
    engine = make_engine([groq, gemini], timeout_s=0.05)

    result = await engine.dispatch(PROMPT, "s-1")

    assert result.provider_id == "gemini"
    transcript = engine.store.get("s-1")
    assert [t.role for t in transcript] == [Role.USER, Role.ASSISTANT]
    assert transcript[1].content == "X"


@pytest.mark.asyncio
async def test_all_providers_failing_leaves_dangling_user_turn():
    groq = FakeProvider("groq", error=RuntimeError("down"))
    gemini = FakeProvider("gemini", error=ValueError("bad response"))
    engine = make_engine([groq, gemini])

    with pytest.raises(AllProvidersExhaustedError) as exc_info:
        await engine.dispatch(PROMPT, "s-1")

    assert exc_info.value.session_id == "s-1"
    assert str(exc_info.value) == "All AI providers failed."
    transcript = engine.store.get("s-1")
    assert len(transcript) == 1
    assert transcript[-1].role == Role.USER


@pytest.mark.asyncio
async def test_empty_reply_counts_as_failure():
    groq = FakeProvider("groq", reply="   ")
    gemini = FakeProvider("gemini", reply="X")
    engine = make_engine([groq, gemini])

    result = await engine.dispatch(PROMPT)

    assert result.provider_id == "gemini"


@pytest.mark.asyncio
async def test_unconfigured_provider_is_skipped_not_called():
    groq = FakeProvider("groq", configured=False)
    gemini = FakeProvider("gemini", reply="X")
    engine = make_engine([groq, gemini])

    result = await engine.dispatch(PROMPT)

    assert result.provider_id == "gemini"
    assert groq.call_count == 0


@pytest.mark.asyncio
async def test_skipped_provider_is_not_counted_as_failure():
    def sample(name, **labels):
        return REGISTRY.get_sample_value(name, labels) or 0.0

    failures_before = sum(
        sample("relay_provider_failures_total", provider="groq", reason=reason)
        for reason in ("timeout", "error", "unconfigured")
    )
    skips_before = sample("relay_provider_skips_total", provider="groq")
    engine = make_engine([FakeProvider("groq", configured=False), FakeProvider("gemini", reply="X")])

    await engine.dispatch(PROMPT)

    failures_after = sum(
        sample("relay_provider_failures_total", provider="groq", reason=reason)
        for reason in ("timeout", "error", "unconfigured")
    )
    assert failures_after == failures_before
    assert sample("relay_provider_skips_total", provider="groq") == skips_before + 1


@pytest.mark.asyncio
async def test_all_unconfigured_is_exhausted():
    engine = make_engine([FakeProvider("groq", configured=False), FakeProvider("gemini", configured=False)])

    with pytest.raises(AllProvidersExhaustedError):
        await engine.dispatch(PROMPT, "s-1")
    assert len(engine.store.get("s-1")) == 1


@pytest.mark.asyncio
async def test_failed_turn_is_replayed_on_next_request():
    groq = FakeProvider("groq", error=RuntimeError("down"))
    engine = make_engine([groq])

    with pytest.raises(AllProvidersExhaustedError):
        await engine.dispatch("first question", "s-1")

    groq.error = None
    groq.reply = "answer"
    await engine.dispatch("second question", "s-1")

    sent = groq.calls[-1]
    assert [t.content for t in sent] == ["first question", "second question"]


# --- Ordering ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_coding_messages_try_coding_provider_first():
    coding = FakeProvider("coding", reply="def f(): pass")
    groq = FakeProvider("groq")
    engine = make_engine([coding, groq, FakeProvider("gemini")])

    result = await engine.dispatch("write a python function")

    assert result.provider_id == "coding"
    assert groq.call_count == 0


@pytest.mark.asyncio
async def test_coding_messages_fall_back_when_coding_unconfigured():
    coding = FakeProvider("coding", configured=False)
    groq = FakeProvider("groq", reply="general answer")
    engine = make_engine([coding, groq, FakeProvider("gemini")])

    result = await engine.dispatch("debug my script")

    assert result.provider_id == "groq"
    assert coding.call_count == 0


@pytest.mark.asyncio
async def test_invocation_order_is_deterministic():
    order = []

    class Recording(FakeProvider):
        async def _complete(self, transcript, options):
            order.append(self.provider_id)
            raise RuntimeError("fail")

    engine = make_engine([Recording("groq"), Recording("gemini")])
    for _ in range(3):
        with pytest.raises(AllProvidersExhaustedError):
            await engine.dispatch(PROMPT)

    assert order == ["groq", "gemini"] * 3


@pytest.mark.asyncio
async def test_providers_are_never_invoked_concurrently():
    active = []
    peak = []

    class Tracking(FakeProvider):
        async def _complete(self, transcript, options):
            active.append(self.provider_id)
            peak.append(len(active))
            await asyncio.sleep(0.01)
            active.remove(self.provider_id)
            raise RuntimeError("fail")

    engine = make_engine([Tracking("groq"), Tracking("gemini")])
    with pytest.raises(AllProvidersExhaustedError):
        await engine.dispatch(PROMPT)

    assert max(peak) == 1


def test_orderings_from_config_defaults_missing_tags_to_general():
    orderings = orderings_from_config({"general": ["b", "a"]})
    assert orderings[IntentTag.GENERAL] == ("b", "a")
    assert orderings[IntentTag.CODING] == ("b", "a")
    assert orderings[IntentTag.ARITHMETIC] == ("b", "a")


@pytest.mark.asyncio
async def test_unknown_provider_in_ordering_is_skipped():
    gemini = FakeProvider("gemini", reply="X")
    engine = DispatchEngine(
        store=InMemorySessionStore(),
        providers={"gemini": gemini},
        classifier=KeywordIntentClassifier(),
        orderings={IntentTag.GENERAL: ("missing", "gemini")},
    )

    result = await engine.dispatch(PROMPT)
    assert result.provider_id == "gemini"


# --- Sessions ----------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_sequential_calls_build_transcript_in_order():
    groq = EchoProvider("groq")
    engine = make_engine([groq, FakeProvider("gemini")])

    first = await engine.dispatch("hello there")
    second = await engine.dispatch("and again", first.session_id)

    assert second.session_id == first.session_id
    transcript = engine.store.get(first.session_id)
    assert [(t.role, t.content) for t in transcript] == [
        (Role.USER, "hello there"),
        (Role.ASSISTANT, "echo: hello there"),
        (Role.USER, "and again"),
        (Role.ASSISTANT, "echo: and again"),
    ]


@pytest.mark.asyncio
async def test_user_turn_recorded_before_provider_is_called():
    groq = FakeProvider("groq", reply="X")
    engine = make_engine([groq])

    await engine.dispatch(PROMPT, "s-1")

    sent = groq.calls[0]
    assert len(sent) == 1
    assert sent[0].role == Role.USER and sent[0].content == PROMPT


@pytest.mark.asyncio
async def test_concurrent_requests_on_one_session_are_serialized():
    groq = EchoProvider("groq", delay_s=0.02)
    engine = make_engine([groq])

    await asyncio.gather(
        engine.dispatch("first", "s-1"),
        engine.dispatch("second", "s-1"),
    )

    contents = [t.content for t in engine.store.get("s-1")]
    assert contents == ["first", "echo: first", "second", "echo: second"]


@pytest.mark.asyncio
async def test_reset_during_request_never_leaves_orphan_assistant_turn():
    groq = EchoProvider("groq", delay_s=0.05)
    engine = make_engine([groq])

    async def reset_later():
        await asyncio.sleep(0.01)
        return await engine.store.reset("s-1")

    result, existed = await asyncio.gather(engine.dispatch("hello", "s-1"), reset_later())

    assert result.reply == "echo: hello"
    assert existed is True
    assert engine.store.get("s-1") == ()

    await engine.dispatch("again", "s-1")
    assert [t.role for t in engine.store.get("s-1")] == [Role.USER, Role.ASSISTANT]


@pytest.mark.asyncio
async def test_different_sessions_proceed_concurrently():
    groq = EchoProvider("groq", delay_s=0.05)
    engine = make_engine([groq])

    loop = asyncio.get_running_loop()
    start = loop.time()
    await asyncio.gather(*(engine.dispatch(f"q{i}", f"s-{i}") for i in range(4)))
    elapsed = loop.time() - start

    assert elapsed < 0.05 * 4
    assert all(len(engine.store.get(f"s-{i}")) == 2 for i in range(4))


@pytest.mark.asyncio
async def test_session_id_is_generated_when_absent():
    engine = make_engine([FakeProvider("groq")])

    a = await engine.dispatch(PROMPT)
    b = await engine.dispatch(PROMPT)

    assert a.session_id and b.session_id and a.session_id != b.session_id


# --- Validation, options and emotion -----------------------------------------------------

@pytest.mark.asyncio
@pytest.mark.parametrize("message", [None, "", "   "])
async def test_blank_message_is_rejected_without_state(message):
    groq = FakeProvider("groq")
    engine = make_engine([groq])

    with pytest.raises(ValidationError):
        await engine.dispatch(message, "s-1")

    assert "s-1" not in engine.store
    assert groq.call_count == 0


@pytest.mark.asyncio
async def test_completion_options_are_passed_through():
    groq = FakeProvider("groq")
    engine = DispatchEngine(
        store=InMemorySessionStore(),
        providers={"groq": groq},
        classifier=KeywordIntentClassifier(),
        options=CompletionOptions(temperature=0.3, max_tokens=50),
    )

    await engine.dispatch(PROMPT)

    assert groq.options_seen[0] == CompletionOptions(temperature=0.3, max_tokens=50)


@pytest.mark.asyncio
async def test_emotion_label_computed_over_input_and_reply():
    annotator = StubAnnotator(label="joy")
    engine = make_engine([FakeProvider("groq", reply="Great news!")], annotator=annotator)

    result = await engine.dispatch("I passed my exam")

    assert result.emotion == "joy"
    assert annotator.texts == ["I passed my exam\nGreat news!"]
    assert result.to_api_response()["emotion"] == "joy"


@pytest.mark.asyncio
async def test_unconfigured_annotator_omits_emotion():
    annotator = StubAnnotator(configured=False)
    engine = make_engine([FakeProvider("groq")], annotator=annotator)

    result = await engine.dispatch(PROMPT)

    assert result.emotion is None
    assert "emotion" not in result.to_api_response()
    assert annotator.texts == []


@pytest.mark.asyncio
async def test_unexpected_classifier_fault_propagates():
    class Broken(KeywordIntentClassifier):
        def classify(self, message):
            raise RuntimeError("classifier exploded")

    engine = DispatchEngine(
        store=InMemorySessionStore(),
        providers={"groq": FakeProvider("groq")},
        classifier=Broken(),
    )

    with pytest.raises(RuntimeError, match="classifier exploded"):
        await engine.dispatch(PROMPT)


def test_provider_info_reports_configured_state():
    engine = make_engine([FakeProvider("groq"), FakeProvider("gemini", configured=False)])
    info = engine.get_provider_info()
    assert info["providers"]["groq"]["configured"] is True
    assert info["providers"]["gemini"]["configured"] is False
    assert info["orderings"]["general"] == ["groq", "gemini"]
