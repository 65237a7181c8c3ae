import asyncio

from conftest import FakeProvider, FakeResponder, make_message

from rakka.core.router import (
    ANALYZING_IMAGE_ACK,
    PROVIDER_FAILURE_REPLY,
    VISION_FAILURE_REPLY,
)
from rakka.errors import ProviderTransportError, SafetyBlockedError
from rakka.messenger.models import ImageAttachment, RepliedMessage


def _route(router, msg, responder=None):
    responder = responder or FakeResponder()
    asyncio.run(router.route(msg, responder))
    return responder


def test_text_question_within_quota(make_router, credits, context):
    provider = FakeProvider(text="Four.", tokens=12)
    router = make_router(provider)

    responder = _route(router, make_message("rakka what is 2+2?"))

    assert provider.calls[0][0] == "text"
    assert provider.calls[0][1] == "what is 2+2?"
    assert responder.replies == [("c1", "m1", "Four.")]
    assert [t.content for t in context.turns("c1", "u1")] == ["what is 2+2?", "Four."]
    assert credits.get_user_stats("u1") == (12, False)


def test_without_message_id_reply_is_plain_send(make_router):
    router = make_router(FakeProvider(text="hi"))
    responder = _route(router, make_message("rakka hello", message_id=None))
    assert responder.sent == [("c1", "hi")]
    assert responder.replies == []


def test_quota_exhausted_user_gets_limit_message(make_router, credits):
    provider = FakeProvider()
    router = make_router(provider)
    credits.record_usage("u1", 1000)

    responder = _route(router, make_message("rakka tell me a joke"))

    assert provider.calls == []
    assert len(responder.sent) == 1
    assert "reached your API usage limit" in responder.sent[0][1]
    assert "!rakka setkey" in responder.sent[0][1]
    assert credits.get_user_stats("u1") == (1000, False)


def test_personal_key_bypasses_quota_and_is_not_metered(make_router, credits):
    provider = FakeProvider(tokens=50)
    router = make_router(provider)
    credits.record_usage("u1", 5000)
    credits.set_user_api_key("u1", "sk-personal")

    responder = _route(router, make_message("rakka still there?"))

    config = provider.calls[0][2]
    assert config.user_key_override == "sk-personal"
    assert responder.replies
    assert credits.get_user_stats("u1") == (5000, True)


def test_image_message_acknowledged_and_uses_vision(make_router):
    provider = FakeProvider(text="A cat.")
    router = make_router(provider)
    msg = make_message("rakka", image=ImageAttachment(data=b"\x89PNG", media_type="image/png"))

    responder = _route(router, msg)

    assert responder.sent[0] == ("c1", ANALYZING_IMAGE_ACK)
    kind, prompt, _ = provider.calls[0]
    assert kind == "vision"
    assert prompt == "Describe the image."
    assert responder.replies == [("c1", "m1", "A cat.")]


def test_image_ack_can_be_disabled(make_router):
    router = make_router(FakeProvider(), analyze_image_ack=False)
    msg = make_message("rakka what is this", image=ImageAttachment(data=b"img"))
    responder = _route(router, msg)
    assert ANALYZING_IMAGE_ACK not in responder.texts


def test_provider_failure_apologizes_without_side_effects(make_router, credits, context):
    router = make_router(FakeProvider(error=ProviderTransportError("API error 500: boom", status_code=500)))

    responder = _route(router, make_message("rakka hello"))

    assert responder.sent == [("c1", PROVIDER_FAILURE_REPLY)]
    assert context.turns("c1", "u1") == []
    assert credits.get_user_stats("u1") == (0, False)


def test_safety_block_on_image_uses_vision_apology(make_router, context):
    router = make_router(FakeProvider(error=SafetyBlockedError("SAFETY")))
    msg = make_message("rakka", image=ImageAttachment(data=b"img"))

    responder = _route(router, msg)

    assert responder.sent[-1] == ("c1", VISION_FAILURE_REPLY)
    assert context.turns("c1", "u1") == []


def test_provider_timeout_apologizes(make_router, credits):
    router = make_router(FakeProvider(delay=1.0), request_timeout=0.05)

    responder = _route(router, make_message("rakka slow question"))

    assert responder.sent == [("c1", PROVIDER_FAILURE_REPLY)]
    assert credits.get_user_stats("u1") == (0, False)


def test_unaddressed_messages_are_ignored(make_router):
    provider = FakeProvider()
    router = make_router(provider)
    for text in ("hello everyone", "Rakkalicious weather", "brakka", "write to mail@rakka", "!rakkafoo help"):
        responder = _route(router, make_message(text))
        assert responder.texts == [], text
    assert provider.calls == []


def test_addressing_variants(make_router):
    provider = FakeProvider()
    router = make_router(provider)
    _route(router, make_message("@rakka hi there"))
    _route(router, make_message("RAKKA, what time is it"))
    _route(router, make_message("what do you think, rakka?"))
    prompts = [call[1].split("\n\n")[-1] for call in provider.calls]
    assert prompts == ["hi there", "what time is it", "what do you think, ?"]


def test_bare_name_without_image_is_dropped(make_router):
    provider = FakeProvider()
    router = make_router(provider)
    responder = _route(router, make_message("rakka"))
    assert responder.texts == []
    assert provider.calls == []


def test_command_is_dispatched_case_insensitively(make_router):
    router = make_router()
    responder = _route(router, make_message("!Rakka STATS"))
    assert responder.sent == [("c1", "Tokens used: 0 (global limit: 1000)")]


def test_unknown_command_gets_hint(make_router):
    provider = FakeProvider()
    router = make_router(provider)
    responder = _route(router, make_message("!rakka frobnicate now"))
    assert responder.sent == [("c1", "Unknown command `frobnicate`. Try `!rakka help`.")]
    assert provider.calls == []


def test_commands_bypass_quota(make_router, credits):
    router = make_router()
    credits.record_usage("u1", 5000)
    responder = _route(router, make_message("!rakka stats"))
    assert responder.sent == [("c1", "Tokens used: 5000 (global limit: 1000)")]


def test_bare_prefix_is_dropped(make_router):
    provider = FakeProvider()
    router = make_router(provider)
    _route(router, make_message("!rakka"))
    assert provider.calls == []


def test_reply_is_truncated_to_platform_limit(make_router):
    router = make_router(FakeProvider(text="x" * 50))
    responder = _route(router, make_message("rakka long answer please"), FakeResponder(max_text_length=20))
    text = responder.replies[0][2]
    assert len(text) == 20
    assert text.endswith("...")


def test_history_and_reply_context_are_prepended(make_router):
    provider = FakeProvider(text="Paris.")
    router = make_router(provider)
    _route(router, make_message("rakka capital of France?"))

    msg = make_message(
        "rakka is that right?",
        reply_to=RepliedMessage(message_id="m0", sender="Bob", text="Lyon is the capital"),
    )
    _route(router, msg)

    prompt = provider.calls[1][1]
    assert prompt.startswith("Conversation history:\nuser: capital of France?\nassistant: Paris.")
    assert '[Replying to message from Bob: "Lyon is the capital"]' in prompt
    assert prompt.endswith("is that right?")


def test_history_is_per_user(make_router):
    provider = FakeProvider()
    router = make_router(provider)
    _route(router, make_message("rakka first", user_id="u1"))
    _route(router, make_message("rakka second", user_id="u2"))
    assert provider.calls[1][1] == "second"


def test_search_flag_and_bot_settings_reach_provider(make_router, credits):
    provider = FakeProvider()
    router = make_router(provider, temperature=0.2, max_response_tokens=256, system_prompt="Be brief.")
    credits.set_search_enabled("u1", True)

    _route(router, make_message("rakka news today?"))

    config = provider.calls[0][2]
    assert config.use_search is True
    assert config.temperature == 0.2
    assert config.max_tokens == 256
    assert config.system_prompt == "Be brief."
    assert config.user_key_override == ""


def test_unreadable_personal_key_falls_back_to_shared_key(make_router, credits):
    provider = FakeProvider()
    router = make_router(provider)
    credits.set_user_api_key("u1", "sk-personal")
    # Corrupt the stored ciphertext in memory
    credits._users["u1"].api_key = b"\x00" * 24

    responder = _route(router, make_message("rakka hi"))

    assert provider.calls[0][2].user_key_override == ""
    assert responder.replies


def test_dispatch_runs_concurrently_and_drain_waits(make_router):
    provider = FakeProvider(delay=0.05)
    router = make_router(provider)
    responder = FakeResponder()

    async def run():
        for i in range(5):
            router.dispatch(make_message(f"rakka question {i}", user_id=f"u{i}"), responder)
        assert router.in_flight == 5
        await router.drain(timeout=5)

    asyncio.run(run())
    assert len(responder.replies) == 5
    assert router.in_flight == 0


def test_dispatch_contains_handler_failures(make_router):
    router = make_router()

    class BrokenResponder(FakeResponder):
        async def reply_text(self, chat_id, original_id, text):
            raise RuntimeError("socket closed")

    async def run():
        task = router.dispatch(make_message("rakka hi"), BrokenResponder())
        await asyncio.gather(task)
        return task

    task = asyncio.run(run())
    assert task.exception() is None


def test_cancelled_request_apologizes_and_propagates(make_router, context):
    router = make_router(FakeProvider(delay=5.0))
    responder = FakeResponder()

    async def run():
        task = router.dispatch(make_message("rakka hi"), responder)
        await asyncio.sleep(0.05)
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return task

    task = asyncio.run(run())
    assert task.cancelled()
    assert responder.sent == [("c1", PROVIDER_FAILURE_REPLY)]
    assert context.turns("c1", "u1") == []


def test_drain_cancels_stragglers(make_router):
    router = make_router(FakeProvider(delay=5.0))
    responder = FakeResponder()

    async def run():
        router.dispatch(make_message("rakka hi"), responder)
        await asyncio.sleep(0.01)
        await router.drain(timeout=0.05)

    asyncio.run(run())
    assert router.in_flight == 0
    assert responder.sent == [("c1", PROVIDER_FAILURE_REPLY)]


def test_setkey_then_stats_reports_own_key(make_router, credits):
    router = make_router()
    credits.record_usage("u1", 300)
    responder = FakeResponder()

    asyncio.run(router.route(make_message("!rakka setkey ABC123"), responder))
    asyncio.run(router.route(make_message("!rakka stats"), responder))

    assert responder.sent == [
        ("c1", "✅ Your API key has been set securely."),
        ("c1", "Tokens used: 300 (using your own API key)"),
    ]
    assert credits.get_user_api_key("u1") == "ABC123"
