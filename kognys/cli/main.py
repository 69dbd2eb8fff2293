"""Kognys CLI - Command Line Interface."""

import asyncio
import signal
import sys

import click
from loguru import logger

from kognys import __version__


@click.group()
@click.version_option(__version__)
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(verbose: bool):
    """Kognys - multi-agent research paper client."""
    from kognys.settings import settings

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else settings.log_level)


@cli.command()
@click.argument("question")
@click.option("--get", "use_get", is_flag=True, help="Use the GET server-push endpoint instead of POST")
@click.option("--chat", "chat_id", help="Existing chat ID to continue")
@click.option("--quiet", "-q", is_flag=True, help="Only print the final paper")
@click.option("--base-url", help="Backend URL (default: KOGNYS__BASE_URL)")
def ask(question: str, use_get: bool, chat_id: str | None, quiet: bool, base_url: str | None):
    """
    Ask the research agents a question and stream their progress.

    Examples:
        kognys ask "How do zero-knowledge proofs scale?"
        kognys ask "Effects of microplastics on soil" --get
        kognys ask "Follow-up question" --chat lx3k9a2bc1d2e3f4g
    """
    try:
        asyncio.run(_ask_async(question, "get" if use_get else "post", chat_id, quiet, base_url))
    except KeyboardInterrupt:
        click.echo("\nAborted.", err=True)
        sys.exit(130)


async def _ask_async(
    question: str,
    method: str,
    chat_id: str | None,
    quiet: bool,
    base_url: str | None,
):
    """Async implementation of ask command."""
    from kognys.errors import ResearchStreamError, StreamAborted
    from kognys.services.session import ChatStore, StoredMessage
    from kognys.streaming import ChatTurn, ResearchStreamTransport, StreamCallbacks

    store = ChatStore()
    chat = store.get_chat(chat_id) if chat_id else None
    if chat_id and chat is None:
        click.echo(f"Error: Chat '{chat_id}' not found", err=True)
        return
    if chat is None:
        chat = store.create_chat()

    history = [ChatTurn(id=m.id, role=m.role, content=m.content) for m in chat.messages]
    history.append(ChatTurn(role="user", content=question))
    store.add_message(chat.id, StoredMessage(role="user", content=question))

    def on_status(text: str, event_kind: str) -> None:
        if not quiet:
            click.secho(f"  · {text}", fg="bright_black")

    def on_agent_message(agent: str, message: str, role: str | None, message_type: str | None) -> None:
        if quiet:
            return
        label = f"{agent} ({role})" if role else agent
        click.secho(f"\n[{label}]", fg="cyan", bold=True)
        click.echo(message)
        store.add_message(
            chat.id,
            StoredMessage(
                role="agent",
                content=message,
                agent_name=agent,
                agent_role=role,
                message_type=message_type,
            ),
        )

    def on_agent_debate(participants, topic: str | None) -> None:
        if not quiet:
            names = ", ".join(p.name for p in participants)
            click.secho(f"  · Debate on {topic or 'research approach'}: {names}", fg="magenta")

    def on_complete(full_text: str, transaction_hash: str | None) -> None:
        content = full_text
        if transaction_hash:
            content += f"\n\n---\n\n**Transaction Hash:** `{transaction_hash}`"
        click.echo()
        click.echo(content)
        store.add_message(
            chat.id,
            StoredMessage(role="assistant", content=content, transaction_hash=transaction_hash),
        )

    def on_error(error: Exception) -> None:
        click.echo(
            f"Sorry, I encountered an error while generating your research paper: {error}. "
            "Please try again.",
            err=True,
        )

    callbacks = StreamCallbacks(
        on_status=on_status,
        on_agent_message=on_agent_message,
        on_agent_debate=on_agent_debate,
        on_complete=on_complete,
        on_error=on_error,
    )

    abort = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, abort.set)
    except NotImplementedError:
        # Windows: Ctrl+C falls back to KeyboardInterrupt
        pass

    transport = ResearchStreamTransport(base_url=base_url)
    try:
        result = await transport.send_messages(history, callbacks, abort=abort, method=method)
    except StreamAborted:
        click.echo("\nAborted.", err=True)
        return
    except ResearchStreamError:
        sys.exit(1)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass

    if not quiet:
        click.secho(
            f"\nChat {chat.id} · {result.document_count} documents · "
            f"{result.iteration_count} extra research rounds"
            + (f" · paper {result.paper_id}" if result.paper_id else ""),
            fg="bright_black",
        )


@cli.command()
@click.argument("paper_id")
@click.option("--base-url", help="Backend URL (default: KOGNYS__BASE_URL)")
def paper(paper_id: str, base_url: str | None):
    """Fetch a previously generated paper by ID."""
    asyncio.run(_paper_async(paper_id, base_url))


async def _paper_async(paper_id: str, base_url: str | None):
    from kognys.api import PaperApi
    from kognys.errors import PaperApiError

    try:
        response = await PaperApi(base_url).get_paper(paper_id)
    except PaperApiError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo(response.paper_content)


@cli.command()
@click.option("--limit", "-l", default=20, help="Number of chats to list")
@click.option("--search", "-s", "query", help="Only chats whose title or messages match")
@click.option("--show", "chat_id", help="Print the messages of one chat")
def history(limit: int, query: str | None, chat_id: str | None):
    """
    List stored chats.

    Examples:
        kognys history
        kognys history --search "zero-knowledge"
        kognys history --show lx3k9a2bc1d2e3f4g
    """
    from kognys.services.session import ChatStore

    store = ChatStore()

    if chat_id:
        chat = store.get_chat(chat_id)
        if chat is None:
            click.echo(f"Error: Chat '{chat_id}' not found", err=True)
            return
        click.secho(chat.title, bold=True)
        for message in chat.messages:
            speaker = message.agent_name or message.role
            click.secho(f"\n[{speaker}]", fg="cyan")
            click.echo(message.content)
        return

    if query:
        chats = store.search_chats(query)[:limit]
        for chat in chats:
            click.echo(f"{chat.id}  {chat.updated_at:%Y-%m-%d %H:%M}  {chat.title}")
        return

    shown = 0
    for label, chats in store.get_grouped_chats().items():
        if shown >= limit:
            break
        click.secho(label, bold=True)
        for chat in chats[: limit - shown]:
            click.echo(f"  {chat.id}  {chat.title} ({len(chat.messages)} messages)")
            shown += 1


if __name__ == "__main__":
    cli()
