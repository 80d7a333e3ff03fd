#!/usr/bin/env python3
"""
SSE Chat command line: run the relay server or chat against it
"""

import argparse
import logging
import sys
import threading
from typing import Optional, List

from rich.console import Console

from ssechat.core.config import get_config
from ssechat.core.models import MessageRole, SessionContext
from ssechat.session import ChatSession, SessionBusyError

console = Console()


def setup_logging(verbose: bool = False):
    """Setup logging configuration"""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def cmd_serve(args):
    """Run the streaming relay server"""
    from ssechat.interfaces.rest.api import RestInterface

    config = get_config()
    ollama_config = config.get_ollama_config()
    if args.ollama_url:
        ollama_config['base_url'] = args.ollama_url.rstrip('/')

    host = args.host or config.get('server.host')
    port = args.port or config.get('server.port')
    debug = args.debug or config.get('server.debug', False)

    interface = RestInterface(config={'ollama': ollama_config})
    if interface.provider.is_available():
        console.print(f"[green]Relaying to Ollama at {ollama_config['base_url']}[/green]")
    else:
        console.print(
            f"[yellow]Warning: Ollama is not reachable at {ollama_config['base_url']}; "
            "chat requests will fail until it is running[/yellow]"
        )
    console.print(f"Serving on http://{host}:{port}/api")
    interface.run(host=host, port=port, debug=debug)
    return 0


CHAT_HELP = """Commands:
  /regen          regenerate the last reply as a new branch
  /edit <text>    resubmit the last prompt with new text as a new branch
  /prev, /next    switch the last reply to a neighbouring branch
  /delete         delete the last reply and its branch
  /tree           show the whole conversation tree
  /stats          show token and timing statistics
  /quit           leave
Ctrl-C while a reply is streaming cancels it."""


def _last_of_role(session: ChatSession, role: MessageRole):
    for node in reversed(session.active_path()):
        if node.role == role:
            return node
    return None


def _run_streaming(session: ChatSession, target, *args):
    """Run a send in a worker thread so Ctrl-C can cancel it"""
    result = {}

    def worker():
        try:
            result['node'] = target(*args)
        except (ValueError, SessionBusyError) as e:
            result['error'] = str(e)

    thread = threading.Thread(target=worker, daemon=True)
    thread.start()

    printed = 0
    try:
        while thread.is_alive():
            thread.join(0.05)
            printed = _print_progress(session, result, printed)
    except KeyboardInterrupt:
        session.cancel()
        thread.join()
        console.print("\n[yellow]Cancelled[/yellow]")
        return

    _print_progress(session, result, printed)
    console.print()
    if result.get('error'):
        console.print(f"[red]Error: {result['error']}[/red]")
    elif session.error:
        console.print(f"[red]Error: {session.error}[/red]")


def _print_progress(session: ChatSession, result: dict, printed: int) -> int:
    node = result.get('node') or session.tree.get(session.in_flight_id)
    if node is None:
        return printed
    text = node.content
    if len(text) > printed:
        console.print(text[printed:], end="", markup=False, highlight=False)
    return len(text)


def _show_position(session: ChatSession, node):
    index, count = session.branch_position(node.id)
    console.print(f"[dim]branch {index + 1}/{count}[/dim]")


def cmd_chat(args):
    """Interactive branching chat against the relay"""
    config = get_config()
    context = SessionContext(
        model=args.model or config.get('chat.default_model'),
        api_base_url=args.api_url or config.get('chat.api_base_url'),
        options=config.get('chat.options', {}) or {},
        timeout=config.get('chat.timeout', 120),
    )
    session = ChatSession(context)

    console.print(f"[bold]Chatting with {context.model}[/bold] via {context.api_base_url}")
    console.print("[dim]Type /help for commands[/dim]")

    while True:
        try:
            line = console.input("[bold green]> [/bold green]").strip()
        except (EOFError, KeyboardInterrupt):
            console.print()
            return 0

        if not line:
            continue

        if line in ('/quit', '/exit'):
            return 0
        elif line == '/help':
            console.print(CHAT_HELP)
        elif line == '/tree':
            console.print(session.tree.format_tree() or "(empty)", markup=False)
        elif line == '/stats':
            stats = session.analytics()
            for key, value in stats.to_dict().items():
                if value is not None:
                    console.print(f"  {key}: {value}")
        elif line == '/regen':
            reply = _last_of_role(session, MessageRole.ASSISTANT)
            if reply is None:
                console.print("[red]Nothing to regenerate[/red]")
                continue
            _run_streaming(session, session.regenerate, reply.id)
        elif line.startswith('/edit '):
            prompt = _last_of_role(session, MessageRole.USER)
            if prompt is None:
                console.print("[red]No prompt to edit[/red]")
                continue
            _run_streaming(session, session.edit_and_resubmit, prompt.id, line[6:])
        elif line in ('/prev', '/next'):
            reply = _last_of_role(session, MessageRole.ASSISTANT)
            if reply is None:
                continue
            node = session.navigate_branch(reply.id, -1 if line == '/prev' else 1)
            console.print(node.content, markup=False)
            _show_position(session, node)
        elif line == '/delete':
            reply = _last_of_role(session, MessageRole.ASSISTANT)
            if reply is None:
                continue
            removed = session.delete(reply.id)
            console.print(f"[dim]Deleted {len(removed)} message(s)[/dim]")
        elif line.startswith('/'):
            console.print(f"[red]Unknown command: {line}[/red]")
        else:
            _run_streaming(session, session.send, line)


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description='SSE Chat - branching chat over a streaming LLM backend'
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    serve_parser = subparsers.add_parser('serve', help='Run the streaming relay server')
    serve_parser.add_argument('--host', help='Bind address')
    serve_parser.add_argument('--port', type=int, help='Port to listen on')
    serve_parser.add_argument('--ollama-url', help='Ollama base URL')
    serve_parser.add_argument('--debug', action='store_true', help='Run Flask in debug mode')

    chat_parser = subparsers.add_parser('chat', help='Chat interactively through the relay')
    chat_parser.add_argument('--model', '-m', help='Model to use')
    chat_parser.add_argument('--api-url', help='Relay API base URL')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    setup_logging(args.verbose)

    if args.command == 'serve':
        return cmd_serve(args)
    return cmd_chat(args)


if __name__ == '__main__':
    sys.exit(main())
