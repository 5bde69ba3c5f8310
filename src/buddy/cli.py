"""Interactive command-line client for the chat endpoint."""

from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import dataclass
from typing import Callable, List, Optional, TextIO

import httpx

from .config import configure_logging

logger = logging.getLogger(__name__)

TIMEOUT = httpx.Timeout(60.0)
SEPARATOR = "-" * 60
EXIT_COMMAND = "exit"


class ApiError(Exception):
    """The endpoint answered with a non-200 status."""

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"API returned error (status {status_code}): {body}")
        self.status_code = status_code
        self.body = body


@dataclass
class ChatReply:
    conversation_id: str
    response: str


class ChatClient:
    """Sends one query per call and remembers the conversation id."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        user_id: str = "default-user",
        conversation_id: str = "",
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.api_url = api_url
        self.user_id = user_id
        self.conversation_id = conversation_id
        self._http = httpx.Client(
            timeout=TIMEOUT,
            headers={"Content-Type": "application/json", "x-api-key": api_key},
            transport=transport,
        )

    def send(self, query: str) -> ChatReply:
        payload = {"userId": self.user_id, "query": query}
        if self.conversation_id:
            payload["conversationId"] = self.conversation_id

        logger.debug("POST %s (conversation=%s)", self.api_url, self.conversation_id or "<new>")
        resp = self._http.post(self.api_url, json=payload)
        if resp.status_code != 200:
            raise ApiError(resp.status_code, resp.text)

        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        reply = ChatReply(conversation_id=str(data["conversationId"]), response=str(data["response"]))
        self.conversation_id = reply.conversation_id
        return reply

    def close(self) -> None:
        self._http.close()


def run_repl(
    client: ChatClient,
    read_line: Callable[[str], str] = input,
    out: Optional[TextIO] = None,
) -> None:
    """Read queries until ``exit`` or end of input, printing each reply."""
    out = out or sys.stdout
    print("CLI Assistant is ready. Type your queries (type 'exit' to quit):", file=out)
    print(SEPARATOR, file=out)
    while True:
        try:
            query = read_line("> ")
        except EOFError:
            query = EXIT_COMMAND

        if query == EXIT_COMMAND:
            print("Goodbye!", file=out)
            return

        try:
            reply = client.send(query)
        except ApiError as e:
            print(str(e), file=out)
            continue
        except httpx.HTTPError as e:
            print(f"Error calling API: {e}", file=out)
            continue
        except (ValueError, KeyError) as e:
            print(f"Error parsing response: {e}", file=out)
            continue

        print(SEPARATOR, file=out)
        print(reply.response, file=out)
        print(SEPARATOR, file=out)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="buddy", description="Chat with the Buddy CLI assistant.")
    parser.add_argument("--api", default=os.environ.get("BUDDY_API_URL", ""), help="Chat endpoint URL (required)")
    parser.add_argument("--key", default=os.environ.get("BUDDY_API_KEY", ""), help="API key for authentication (required)")
    parser.add_argument("--user", default=os.environ.get("BUDDY_USER_ID", "default-user"), help="User ID")
    parser.add_argument("--conv", default=os.environ.get("BUDDY_CONVERSATION_ID", ""), help="Conversation ID to resume (optional)")
    parser.add_argument("--log-level", default="WARNING", help="Client log level (default: WARNING)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging({"logging": {"level": args.log_level}})

    if not args.api or not args.key:
        print("Error: API URL and API Key are required")
        parser.print_usage()
        return 1

    client = ChatClient(args.api, args.key, user_id=args.user, conversation_id=args.conv)
    try:
        run_repl(client)
    finally:
        client.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
