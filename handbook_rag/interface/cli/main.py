"""CLI: ask the handbook assistant a question (in-process or against a running server)."""

import argparse
import asyncio
import sys
import uuid

from handbook_rag.application.dto.chat_dto import ChatRequest
from handbook_rag.config.compose import Container, build_container
from handbook_rag.config.logging import configure_logging
from handbook_rag.config.settings import AppSettings
from handbook_rag.domain.errors import CompletionError, DomainError
from handbook_rag.domain.models import Conversation, Message
from handbook_rag.interface.client.conversation_client import ConversationClient, user_message_for


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="handbook-ask", description=__doc__)
    parser.add_argument(
        "--question", "-q", help="Question to ask (omit for an interactive session)"
    )
    parser.add_argument(
        "--server",
        help="Base URL of a running API (e.g. http://localhost:8000); default runs in-process",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    return parser


def _print_progress(previous: str, current: str) -> str:
    # frames carry cumulative text; print only the new tail
    sys.stdout.write(current[len(previous) :] if current.startswith(previous) else "\n" + current)
    sys.stdout.flush()
    return current


async def ask_in_process(
    container: Container, conversation: Conversation, question: str
) -> DomainError | None:
    conversation.append(Message(id=uuid.uuid4().hex, role="user", content=question))
    result = await container.get_answer_use_case().execute(
        ChatRequest(messages=tuple(conversation.messages))
    )
    if not result.ok or result.value is None:
        return result.error
    shown = ""
    try:
        async for event in result.value.events():
            shown = _print_progress(shown, event.text)
    except CompletionError as ex:
        return ex
    finally:
        print()
    conversation.append(Message(id=uuid.uuid4().hex, role="assistant", content=shown))
    return None


async def ask_remote(
    client: ConversationClient, conversation: Conversation, question: str
) -> DomainError | None:
    shown = ""

    def on_update(message: Message) -> None:
        nonlocal shown
        shown = _print_progress(shown, message.content)

    result = await client.ask(conversation, question, on_update=on_update)
    print()
    return None if result.ok else result.error


async def run(args: argparse.Namespace) -> int:
    conversation = Conversation()
    client = ConversationClient(base_url=args.server) if args.server else None
    container = None if client is not None else build_container()
    if container is not None:
        await container.start()

    async def turn(question: str) -> int:
        if client is not None:
            err = await ask_remote(client, conversation, question)
        else:
            assert container is not None
            err = await ask_in_process(container, conversation, question)
        if err is not None:
            print(f"[ERROR] {user_message_for(err)} ({type(err).__name__}: {err})")
            return 1
        return 0

    try:
        if args.question:
            return await turn(args.question)
        code = 0
        while True:
            try:
                question = input("\nYou: ").strip()
            except EOFError:
                return code
            if question.lower() in {"exit", "quit"}:
                return code
            if question:
                code = await turn(question)
    finally:
        if client is not None:
            await client.aclose()
        if container is not None:
            await container.close()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or AppSettings().log_level)
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
