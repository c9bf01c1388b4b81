from __future__ import annotations

import json

import pytest

from tokmeter.calculator import TokenCalculator
from tokmeter.config import AccountingConfig
from tokmeter.encoding import EncodingRegistry
from tokmeter.errors import ImageDecodeError, InvalidToolSpecError
from tokmeter.tokenizer import (
    Conversation,
    ImagePart,
    Message,
    TextPart,
    ToolSpec,
    count_tokens,
)

LEGACY = "gpt-3.5-turbo-0301"


def _words(text: str) -> int:
    return len(text.split())


def _chat() -> list[Message]:
    return [
        Message(role="system", content="You are a helpful assistant"),
        Message(role="user", content="What is the capital of France?"),
        Message(role="assistant", content="Paris"),
    ]


class TestConstruction:
    def test_uses_given_empty_registry(self, registry, loader):
        registry.add_override("house-model", "o200k_base")
        calc = TokenCalculator(registry=registry)
        assert calc.registry is registry
        assert calc.counter("house-model").name == "o200k_base"
        assert loader.calls["o200k_base"] == 1

    def test_fixture_uses_fake_registry(self, calculator, registry):
        assert calculator.registry is registry

    def test_builds_registry_from_config(self):
        config = AccountingConfig(encoding_overrides={"house-model": "o200k_base"})
        calc = TokenCalculator(config=config)
        assert calc.registry.explain("house-model").family.value == "o200k_base"
        assert len(calc.registry) == 0


class TestTextCounter:
    def test_empty_text_is_zero(self, calculator):
        assert calculator.count_text("", "gpt-4") == 0

    def test_deterministic(self, calculator):
        text = "the quick brown fox"
        assert calculator.count_text(text, "gpt-4") == calculator.count_text(text, "gpt-4")

    def test_count_tokens_uses_encoder(self, registry):
        assert count_tokens(registry.resolve("gpt-4"), "one two three") == 3

    def test_text_tokens_accepts_sequences_and_values(self, calculator):
        assert calculator.text_tokens(["one ", "two"], "gpt-4") == 2
        assert calculator.text_tokens(12345, "gpt-4") == 1

    def test_counter_carries_family_name(self, calculator):
        assert calculator.counter("gpt-4o").name == "o200k_base"


class TestMessageAggregator:
    def test_plain_messages(self, calculator):
        messages = _chat()
        expected = sum(_words(m.role) + _words(m.content) + 3 for m in messages) + 3
        assert calculator.messages_tokens(messages, "gpt-4") == expected

    def test_legacy_model_uses_four_per_message(self, calculator):
        messages = _chat()
        expected = sum(_words(m.role) + _words(m.content) + 4 for m in messages) + 3
        assert calculator.messages_tokens(messages, LEGACY) == expected

    def test_name_adds_one(self, calculator):
        message = Message(role="user", content="hi there", name="alice smith")
        assert calculator.message_tokens(message, "gpt-4") == 3 + 1 + 2 + 1 + 2

    def test_legacy_name_subtracts_one(self, calculator):
        message = Message(role="user", content="hi there", name="alice smith")
        assert calculator.message_tokens(message, LEGACY) == 4 + 1 + 2 - 1 + 2

    def test_name_ignored_for_empty_content(self, calculator):
        message = Message(role="assistant", content="", name="bot")
        assert calculator.message_tokens(message, "gpt-4") == 3 + 1
        assert calculator.message_tokens(message, LEGACY) == 4 + 1

    def test_name_ignored_for_part_lists(self, calculator):
        message = Message(role="user", content=[TextPart("hi there")], name="alice")
        assert calculator.message_tokens(message, "gpt-4") == 3 + 1 + 2

    def test_empty_conversation_is_priming_only(self, calculator):
        assert calculator.messages_tokens([], "gpt-4") == 3

    def test_text_and_image_parts(self, calculator, resolver):
        message = Message(
            role="user",
            content=[
                TextPart("what is in this picture"),
                ImagePart(url="https://img.example/a.png", detail="high"),
            ],
        )
        assert calculator.message_tokens(message, "gpt-4o") == 3 + 1 + 5 + 765
        assert resolver.calls == ["https://img.example/a.png"]

    def test_low_detail_skips_resolver(self, calculator, resolver):
        message = Message(role="user", content=[ImagePart(url="x", detail="low")])
        assert calculator.message_tokens(message, "gpt-4o") == 3 + 1 + 85
        assert resolver.calls == []

    def test_fixed_cost_model_skips_resolver(self, calculator, resolver):
        message = Message(role="user", content=[ImagePart(url="x")])
        assert calculator.message_tokens(message, "glm-4v") == 3 + 1 + 1047
        assert resolver.calls == []

    def test_resolver_failure_propagates_with_source_note(self, calculator, resolver):
        resolver.error = OSError("connection reset")
        message = Message(role="user", content=[ImagePart(url="https://img.example/b.png")])
        with pytest.raises(OSError) as exc_info:
            calculator.messages_tokens([message], "gpt-4o")
        assert exc_info.value is resolver.error
        assert any("b.png" in note for note in exc_info.value.__notes__)

    def test_resolver_decode_error_propagates_unchanged(self, calculator, resolver):
        original = ImageDecodeError("https://img.example/c.png", "unsupported format")
        resolver.error = original
        message = Message(role="user", content=[ImagePart(url="https://img.example/c.png")])
        with pytest.raises(ImageDecodeError) as exc_info:
            calculator.message_tokens(message, "gpt-4o")
        assert exc_info.value is original

    def test_zero_dimensions_raise(self, calculator, resolver):
        resolver.width = 0
        message = Message(role="user", content=[ImagePart(url="https://img.example/d.png")])
        with pytest.raises(ImageDecodeError):
            calculator.message_tokens(message, "gpt-4o")

    def test_no_resolver_configured(self, registry):
        calculator = TokenCalculator(registry=registry)
        message = Message(role="user", content=[ImagePart(url="https://img.example/e.png")])
        with pytest.raises(ImageDecodeError, match="no image resolver"):
            calculator.message_tokens(message, "gpt-4o")


class TestRequestTokens:
    def test_tool_with_name_only(self, calculator):
        assert calculator.tool_tokens([ToolSpec(name="get_weather")], "gpt-4") == 8 + 1

    def test_tool_with_empty_description_and_parameters(self, calculator):
        tool = ToolSpec(name="get_weather", description="", parameters={})
        assert calculator.tool_tokens([tool], "gpt-4") == 8 + 1

    def test_tool_text_concatenation(self, calculator):
        params = {"type": "object", "properties": {"city": {"type": "string"}}}
        tool = ToolSpec(name="get_weather", description="Look up the weather", parameters=params)
        expected = 8 + _words("get_weather" + "Look up the weather" + json.dumps(params))
        assert calculator.tool_tokens([tool], "gpt-4") == expected

    def test_each_tool_has_overhead(self, calculator):
        tools = [ToolSpec(name="a"), ToolSpec(name="b"), ToolSpec(name="c")]
        assert calculator.tool_tokens(tools, "gpt-4") == 3 * (8 + 1)

    def test_request_sums_messages_and_tools(self, calculator):
        conversation = Conversation(
            model="gpt-4",
            messages=_chat(),
            tools=[ToolSpec(name="lookup")],
        )
        expected = calculator.messages_tokens(_chat(), "gpt-4") + 9
        assert calculator.request_tokens(conversation) == expected

    def test_model_argument_overrides_conversation(self, calculator):
        conversation = Conversation(model="gpt-4", messages=_chat())
        assert calculator.request_tokens(conversation, LEGACY) == calculator.messages_tokens(
            _chat(), LEGACY
        )

    def test_unserializable_parameters(self, calculator):
        tool = ToolSpec(name="broken", parameters={"default": object()})
        conversation = Conversation(model="gpt-4", messages=_chat(), tools=[tool])
        with pytest.raises(InvalidToolSpecError) as exc_info:
            calculator.request_tokens(conversation)
        assert exc_info.value.tool_name == "broken"
        # message-level counting is unaffected
        assert calculator.messages_tokens(conversation.messages, "gpt-4") > 0


class TestResponseTokens:
    def test_content_only(self, calculator):
        outputs = ["hello world", Message(role="assistant", content="a b c", name="bot")]
        assert calculator.response_tokens(outputs, "gpt-4") == 5

    def test_images_ignored(self, calculator, resolver):
        message = Message(
            role="assistant",
            content=[TextPart("see this"), ImagePart(url="https://img.example/f.png")],
        )
        assert calculator.response_tokens([message], "gpt-4o") == 2
        assert resolver.calls == []

    def test_empty_deltas(self, calculator):
        assert calculator.response_tokens(["", ""], "gpt-4") == 0

    def test_generated_text_and_images(self, calculator, resolver):
        resolver.width, resolver.height = 2048, 1024
        total = calculator.generated_tokens(
            "gpt-4o", texts=["one two", " three"], image_urls=["https://img.example/g.png"]
        )
        assert total == 3 + 1105


class TestAudioTokens:
    def test_speech_model_counts_code_points(self, calculator):
        assert calculator.audio_tokens("héllo wörld", "tts-1") == 11
        assert calculator.audio_tokens("👍🏽", "tts-1-hd") == 2

    def test_other_models_use_tokenizer(self, calculator):
        assert calculator.audio_tokens("héllo wörld", "whisper-1") == 2

    def test_speech_prefixes_configurable(self, loader):
        config = AccountingConfig(speech_prefixes=("voice-",))
        calculator = TokenCalculator(EncodingRegistry(config, loader=loader), config=config)
        assert calculator.audio_tokens("a b", "voice-alpha") == 3
        assert calculator.audio_tokens("a b", "tts-1") == 2
