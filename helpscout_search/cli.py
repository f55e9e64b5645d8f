#!/usr/bin/env python3
"""
Help Scout Search CLI - search conversations and read threads from the terminal
"""

import argparse
import asyncio
import sys

from rich.console import Console
from rich.table import Table

from helpscout_search.client import HelpScoutClient
from helpscout_search.config import Settings, configure_logging
from helpscout_search.errors import ApiError
from helpscout_search.schemas import parse_tool_request
from helpscout_search.search_service import SearchService


console = Console()


def print_conversations(result: dict) -> None:
    table = Table(title="Conversations", show_header=True, header_style="bold cyan")
    table.add_column("#", justify="right", style="cyan", width=8)
    table.add_column("Status", width=8)
    table.add_column("Created", width=20)
    table.add_column("Subject", overflow="fold")

    for conversation in result['results']:
        table.add_row(
            str(conversation.get('number') or conversation.get('id')),
            conversation.get('status') or '',
            conversation.get('createdAt') or '',
            conversation.get('subject') or ''
        )
    console.print(table)

    pagination = result.get('pagination') or {}
    if pagination.get('note'):
        style = "red" if pagination.get('failedStatuses') else "dim"
        console.print(f"[{style}]{pagination['note']}[/{style}]")
    console.print(f"[dim]Query: {result.get('searchQuery')}[/dim]")


def print_threads(result: dict) -> None:
    console.print(f"\n[bold blue]Conversation {result['conversationId']}[/bold blue]")
    for thread in result['threads']:
        author = (thread.get('createdBy') or {}).get('email') or thread.get('type') or ''
        console.print(f"\n[cyan]{thread.get('createdAt', '')}[/cyan] [green]{author}[/green]")
        console.print(thread.get('body') or '[dim](no body)[/dim]')
        for image in thread.get('inlineImages') or []:
            console.print(f"  [dim]Image {image['index']}: {image['src']}[/dim]")
        if thread.get('attachmentCount'):
            console.print(f"  [dim]{thread['attachmentCount']} attachment(s)[/dim]")


async def run(args: argparse.Namespace, service: SearchService) -> None:
    if args.command == 'search':
        arguments = {
            'searchTerms': args.terms,
            'timeframeDays': args.days,
            'limitPerStatus': args.limit,
        }
        if args.status:
            arguments['statuses'] = args.status
        request = parse_tool_request('comprehensiveConversationSearch', arguments)
        result, _ = await service.call_tool(request)
        print_conversations(result)

    elif args.command == 'threads':
        request = parse_tool_request('getThreads', {'conversationId': args.conversation_id})
        result, _ = await service.call_tool(request)
        print_threads(result)


def main():
    """Main entry point"""

    parser = argparse.ArgumentParser(description='Search Help Scout conversations and read their threads')
    subparsers = parser.add_subparsers(dest='command', required=True)

    search_parser = subparsers.add_parser('search', help='Keyword search across statuses')
    search_parser.add_argument('terms', nargs='+', help='Search terms (any term matches)')
    search_parser.add_argument('--status', action='append', choices=['active', 'pending', 'closed', 'spam'],
                               help='Status to search (repeatable, default: active, pending and closed)')
    search_parser.add_argument('--days', type=int, default=60, help='How many days back to search (default: 60)')
    search_parser.add_argument('--limit', type=int, default=25, help='Results per status (default: 25)')

    threads_parser = subparsers.add_parser('threads', help='Show the messages of one conversation')
    threads_parser.add_argument('conversation_id', help='Conversation id from search results')

    args = parser.parse_args()

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    try:
        settings.validate()
    except ValueError as error:
        console.print(f"[red]Configuration error: {error}[/red]")
        sys.exit(2)

    service = SearchService(HelpScoutClient(settings), settings)
    try:
        asyncio.run(run(args, service))
    except ApiError as error:
        console.print(f"[red]{error.code.value}: {error.message}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
