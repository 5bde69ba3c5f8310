from __future__ import annotations

import io
import json
from typing import Iterator, List

import httpx
import pytest

from buddy.cli import ApiError, ChatClient, main, run_repl


def _scripted(lines: List[str]):
    it: Iterator[str] = iter(lines)

    def read_line(prompt: str) -> str:
        try:
            return next(it)
        except StopIteration:
            raise EOFError
    return read_line


def _client(handler, **kwargs) -> ChatClient:
    return ChatClient("http://buddy.test/chat", "secret", transport=httpx.MockTransport(handler), **kwargs)


def test_send_posts_payload_and_remembers_conversation():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"conversationId": "conv-9", "response": "Use `ls`."})

    client = _client(handler, user_id="u1")
    first = client.send("list files")
    client.send("and hidden files?")

    assert first.response == "Use `ls`."
    assert client.conversation_id == "conv-9"
    assert seen[0].headers["x-api-key"] == "secret"
    assert json.loads(seen[0].content) == {"userId": "u1", "query": "list files"}
    assert json.loads(seen[1].content)["conversationId"] == "conv-9"


def test_repl_prints_replies_and_stops_on_exit():
    def handler(request: httpx.Request) -> httpx.Response:
        query = json.loads(request.content)["query"]
        return httpx.Response(200, json={"conversationId": "conv-1", "response": f"echo {query}"})

    out = io.StringIO()
    run_repl(_client(handler), _scripted(["one", "exit", "never sent"]), out)

    text = out.getvalue()
    assert "echo one" in text
    assert "never sent" not in text
    assert text.rstrip().endswith("Goodbye!")


def test_repl_reports_errors_and_keeps_going():
    responses = iter([
        httpx.Response(500, text="Failed to invoke model: boom"),
        httpx.Response(200, text="not json"),
        httpx.Response(200, json={"conversationId": "conv-2", "response": "recovered"}),
    ])
    client = _client(lambda request: next(responses))

    out = io.StringIO()
    run_repl(client, _scripted(["a", "b", "c"]), out)

    text = out.getvalue()
    assert "API returned error (status 500): Failed to invoke model: boom" in text
    assert "Error parsing response" in text
    assert "recovered" in text
    assert client.conversation_id == "conv-2"


@pytest.mark.parametrize("body", [b"[]", b"null", b'"x"'])
def test_non_object_reply_is_a_parse_error(body):
    responses = iter([
        httpx.Response(200, content=body, headers={"Content-Type": "application/json"}),
        httpx.Response(200, json={"conversationId": "conv-3", "response": "still here"}),
    ])
    client = _client(lambda request: next(responses))

    out = io.StringIO()
    run_repl(client, _scripted(["a", "b"]), out)

    text = out.getvalue()
    assert "Error parsing response: expected a JSON object" in text
    assert "still here" in text
    assert text.rstrip().endswith("Goodbye!")


def test_transport_errors_are_printed():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    out = io.StringIO()
    run_repl(_client(handler), _scripted(["hi"]), out)
    assert "Error calling API: connection refused" in out.getvalue()


def test_exit_must_match_exactly():
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content)["query"])
        return httpx.Response(200, json={"conversationId": "c", "response": "ok"})

    run_repl(_client(handler), _scripted(["exit now", "exit"]), io.StringIO())
    assert sent == ["exit now"]


def test_api_error_carries_status():
    err = ApiError(404, "missing")
    assert err.status_code == 404
    assert str(err) == "API returned error (status 404): missing"


def test_main_requires_url_and_key(clean_env, capsys):
    assert main(["--user", "u1"]) == 1
    assert "API URL and API Key are required" in capsys.readouterr().out
