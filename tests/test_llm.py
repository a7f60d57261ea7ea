import os
import unittest
from types import SimpleNamespace
from unittest.mock import patch

from support import FakeAIClient

from prepkit.ai.factory import get_ai_client
from prepkit.ai.providers.openai_provider import OpenAIProvider
from prepkit.ai.types import ChatMessage
from prepkit.services.llm import (
    LLMError,
    as_list,
    chat_completion,
    chat_json,
    coerce_score,
    llm_enabled,
    parse_json_content,
    set_ai_client,
    strip_code_fences,
    truncate,
)


class AuthenticationError(Exception):
    pass


class CodeFenceTests(unittest.TestCase):
    def test_strips_json_fence(self):
        self.assertEqual(strip_code_fences('```json\n{"a": 1}\n```'), '{"a": 1}')

    def test_strips_plain_fence_and_whitespace(self):
        self.assertEqual(strip_code_fences('  ```\n{"a": 1}\n```  \n'), '{"a": 1}')

    def test_leaves_unfenced_text(self):
        self.assertEqual(strip_code_fences('{"a": 1}'), '{"a": 1}')


class ParseJsonContentTests(unittest.TestCase):
    def test_parses_fenced_object(self):
        self.assertEqual(parse_json_content('```json\n{"score": 80}\n```'), {"score": 80})

    def test_invalid_json_has_code(self):
        with self.assertRaises(LLMError) as ctx:
            parse_json_content("not json")
        self.assertEqual(ctx.exception.code, "invalid_json")

    def test_non_finite_constants_are_invalid_json(self):
        for content in ('{"score": NaN}', '{"score": Infinity}', '{"score": -Infinity}'):
            with self.assertRaises(LLMError) as ctx:
                parse_json_content(content)
            self.assertEqual(ctx.exception.code, "invalid_json")

    def test_overflowing_number_parses_as_float(self):
        self.assertEqual(parse_json_content('{"score": 1e400}')["score"], float("inf"))

    def test_array_is_rejected(self):
        with self.assertRaises(LLMError) as ctx:
            parse_json_content("[1, 2]")
        self.assertEqual(ctx.exception.code, "invalid_json")


class ChatCompletionTests(unittest.TestCase):
    def tearDown(self):
        set_ai_client(None)

    def test_missing_api_key(self):
        set_ai_client(None)
        with patch.dict(os.environ, {"OPENAI_API_KEY": ""}):
            self.assertFalse(llm_enabled())
            with self.assertRaises(LLMError) as ctx:
                chat_completion(system_prompt="s", user_prompt="u", task="test")
        self.assertEqual(ctx.exception.code, "missing_api_key")

    def test_placeholder_api_key_counts_as_missing(self):
        set_ai_client(None)
        with patch.dict(os.environ, {"OPENAI_API_KEY": "your_openai_api_key"}):
            self.assertFalse(llm_enabled())

    def test_returns_content_and_passes_options(self):
        client = FakeAIClient("hello")
        set_ai_client(client)
        content = chat_completion(system_prompt="sys", user_prompt="user", temperature=0.3, max_tokens=50)
        self.assertEqual(content, "hello")
        self.assertEqual(client.calls[0]["temperature"], 0.3)
        self.assertEqual(client.calls[0]["max_tokens"], 50)
        self.assertEqual(client.last_system_prompt, "sys")
        self.assertEqual(client.last_user_prompt, "user")

    def test_blank_content(self):
        set_ai_client(FakeAIClient("   "))
        with self.assertRaises(LLMError) as ctx:
            chat_completion(system_prompt="s", user_prompt="u")
        self.assertEqual(ctx.exception.code, "content_blank")

    def test_authentication_failure(self):
        set_ai_client(FakeAIClient(AuthenticationError("bad key")))
        with self.assertRaises(LLMError) as ctx:
            chat_completion(system_prompt="s", user_prompt="u")
        self.assertEqual(ctx.exception.code, "authentication")
        self.assertIn("401", str(ctx.exception))

    def test_other_failure_names_exception_type(self):
        set_ai_client(FakeAIClient(TimeoutError("slow")))
        with self.assertRaises(LLMError) as ctx:
            chat_completion(system_prompt="s", user_prompt="u")
        self.assertEqual(ctx.exception.code, "llm_exception")
        self.assertIn("TimeoutError", str(ctx.exception))

    def test_chat_json(self):
        set_ai_client(FakeAIClient('```json\n{"ok": true}\n```'))
        self.assertEqual(chat_json(system_prompt="s", user_prompt="u"), {"ok": True})


class HelperTests(unittest.TestCase):
    def test_truncate(self):
        self.assertEqual(truncate("abcdef", 10), "abcdef")
        self.assertEqual(truncate("abcdefghij", 5), "ab...")
        self.assertEqual(truncate(None, 5), "")

    def test_as_list(self):
        self.assertEqual(as_list(None), [])
        self.assertEqual(as_list(["a"]), ["a"])
        self.assertEqual(as_list(("a", "b")), ["a", "b"])
        self.assertEqual(as_list("a"), ["a"])

    def test_coerce_score(self):
        self.assertEqual(coerce_score(85), 85)
        self.assertEqual(coerce_score(72.9), 72)
        self.assertEqual(coerce_score("85点"), 85)
        self.assertEqual(coerce_score("abc"), 0)
        self.assertEqual(coerce_score(130), 100)
        self.assertEqual(coerce_score(-5), 0)
        self.assertEqual(coerce_score(float("nan")), 0)
        self.assertEqual(coerce_score(float("inf")), 0)
        self.assertEqual(coerce_score(float("-inf")), 0)


class ProviderTests(unittest.TestCase):
    def test_factory_builds_openai_provider(self):
        env = {"AI_PROVIDER": "openai", "AI_MODEL": "gpt-test", "OPENAI_API_KEY": "sk-test"}
        with patch.dict(os.environ, env), patch("prepkit.ai.providers.openai_provider.OpenAI") as client_cls:
            client = get_ai_client()
        self.assertIsInstance(client, OpenAIProvider)
        self.assertEqual(client.model, "gpt-test")
        self.assertEqual(client_cls.call_args.kwargs["api_key"], "sk-test")

    def test_unknown_provider(self):
        with patch.dict(os.environ, {"AI_PROVIDER": "other"}):
            with self.assertRaises(ValueError):
                get_ai_client()

    def test_complete_sends_messages_and_options(self):
        with patch("prepkit.ai.providers.openai_provider.OpenAI") as client_cls:
            provider = OpenAIProvider(model="gpt-test", api_key="sk-test")
            create = client_cls.return_value.chat.completions.create
            create.return_value = SimpleNamespace(
                choices=[SimpleNamespace(message=SimpleNamespace(content="回答"))]
            )
            content = provider.complete(
                [ChatMessage(role="system", content="s"), ChatMessage(role="user", content="u")],
                temperature=0.3,
                max_tokens=2000,
            )
        self.assertEqual(content, "回答")
        kwargs = create.call_args.kwargs
        self.assertEqual(kwargs["messages"][1], {"role": "user", "content": "u"})
        self.assertEqual(kwargs["temperature"], 0.3)
        self.assertEqual(kwargs["max_tokens"], 2000)

    def test_complete_without_choices(self):
        with patch("prepkit.ai.providers.openai_provider.OpenAI") as client_cls:
            provider = OpenAIProvider(model="gpt-test", api_key="sk-test")
            client_cls.return_value.chat.completions.create.return_value = SimpleNamespace(choices=[])
            self.assertEqual(provider.complete([], temperature=0.5), "")

    def test_missing_key(self):
        with patch.dict(os.environ, {"OPENAI_API_KEY": ""}):
            with self.assertRaises(RuntimeError):
                OpenAIProvider(model="gpt-test")


if __name__ == "__main__":
    unittest.main()
