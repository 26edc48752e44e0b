"""Tests for mapping buffered NIM responses."""

from nim_proxy.core import ProxySettings, map_completion
from nim_proxy.testing import assert_openai_chat_valid, build_nim_chat_response


class TestMapCompletion:
    def test_basic_mapping(self):
        body = build_nim_chat_response(
            "hello", usage={"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4}
        )
        result = map_completion(body, "gpt-4o", ProxySettings())
        assert_openai_chat_valid(result)
        assert result["model"] == "gpt-4o"
        assert result["id"].startswith("chatcmpl-")
        assert result["choices"] == [
            {"index": 0, "message": {"role": "assistant", "content": "hello"}, "finish_reason": "stop"}
        ]
        assert result["usage"] == {"prompt_tokens": 3, "completion_tokens": 1, "total_tokens": 4}

    def test_missing_usage_counters_default_to_zero(self):
        body = build_nim_chat_response("hello", usage={"completion_tokens": 1})
        result = map_completion(body, "gpt-4o", ProxySettings())
        assert result["usage"] == {"prompt_tokens": 0, "completion_tokens": 1, "total_tokens": 0}

    def test_absent_usage(self):
        result = map_completion(build_nim_chat_response("hello"), "gpt-4o", ProxySettings())
        assert result["usage"] == {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}

    def test_reasoning_hidden_by_default(self):
        body = build_nim_chat_response("answer", reasoning="thoughts")
        result = map_completion(body, "gpt-4o", ProxySettings())
        message = result["choices"][0]["message"]
        assert message == {"role": "assistant", "content": "answer"}

    def test_reasoning_rendered_when_visible(self):
        body = build_nim_chat_response("answer", reasoning="thoughts")
        result = map_completion(body, "gpt-4o", ProxySettings(show_reasoning=True))
        assert result["choices"][0]["message"]["content"] == "<think>\nthoughts\n</think>\n\nanswer"

    def test_reasoning_alias_field(self):
        body = build_nim_chat_response("answer", reasoning="thoughts", reasoning_field="reasoning")
        result = map_completion(body, "gpt-4o", ProxySettings(show_reasoning=True))
        assert result["choices"][0]["message"]["content"].startswith("<think>\nthoughts")

    def test_role_defaults_to_assistant(self):
        body = {"choices": [{"message": {"content": "x"}, "finish_reason": "stop"}]}
        result = map_completion(body, "m", ProxySettings())
        assert result["choices"][0]["message"]["role"] == "assistant"
        assert result["choices"][0]["index"] == 0

    def test_tolerates_missing_choices(self):
        result = map_completion({}, "m", ProxySettings())
        assert result["choices"] == []
        assert result["object"] == "chat.completion"
