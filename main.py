"""Course Forum command-line entry point.

Loads configuration, sets up logging, opens the document store, and runs
maintenance and inspection commands against the forum.
"""

import sys
import argparse
import logging
import asyncio
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from config.config_manager import ConfigManager
from core.error_handler import get_error_handler
from core.sql_store import SQLDocumentStore
from logic.engagement import display_view_count
from logic.forum_service import ForumService
from models.forum import CATEGORY_LABELS, ForumCategory, Thread


def setup_logging(log_level: str, log_path: Path, max_bytes: int = 10485760, backup_count: int = 5):
    """
    Configure application logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_path: Path to log file
        max_bytes: Size at which the log file rotates
        backup_count: Number of rotated files to keep
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backup_count, encoding='utf-8'),
            logging.StreamHandler(sys.stdout)
        ]
    )

    logger = logging.getLogger(__name__)
    logger.info(f"Logging initialized at level {log_level}")
    logger.info(f"Log file: {log_path}")


def parse_arguments(argv: Optional[list] = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description='Course Forum - discussion forum maintenance tool',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # List the newest general threads
  python main.py list --category general

  # Search titles and contents
  python main.py search "neural networks"

  # Delete a thread and all of its replies
  python main.py delete <thread-id>

  # Repair a thread's reply counter
  python main.py reconcile <thread-id>
        """
    )

    parser.add_argument(
        '--config',
        type=str,
        default=None,
        metavar='PATH',
        help='Path to configuration file'
    )

    parser.add_argument(
        '--log-level',
        type=str,
        default=None,
        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
        help='Override logging level from config'
    )

    subparsers = parser.add_subparsers(dest='command', required=True)

    categories = [c.value for c in ForumCategory]

    list_parser = subparsers.add_parser('list', help='List threads, newest first')
    list_parser.add_argument('--category', choices=categories, default=None)
    list_parser.add_argument('--page-size', type=int, default=None)
    list_parser.add_argument('--pages', type=int, default=1, help='Number of pages to fetch')

    search_parser = subparsers.add_parser('search', help='Search thread titles and contents')
    search_parser.add_argument('term')
    search_parser.add_argument('--category', choices=categories, default=None)

    show_parser = subparsers.add_parser('show', help='Show a thread and its replies')
    show_parser.add_argument('thread_id')

    delete_parser = subparsers.add_parser('delete', help='Delete a thread and its replies')
    delete_parser.add_argument('thread_id')

    reconcile_parser = subparsers.add_parser('reconcile', help="Recompute a thread's reply count")
    reconcile_parser.add_argument('thread_id')

    return parser.parse_args(argv)


def format_thread(thread: Thread) -> str:
    try:
        label = CATEGORY_LABELS[ForumCategory(thread.category)]
    except ValueError:
        label = thread.category
    created = thread.created_at.strftime('%Y-%m-%d %H:%M') if thread.created_at else '-'
    flags = ''.join([
        '[pinned] ' if thread.is_pinned else '',
        '[locked] ' if thread.is_locked else '',
    ])
    return (
        f"{thread.id}  {flags}{thread.title}\n"
        f"    {label} | by {thread.author_name} | {created} | "
        f"{thread.reply_count} replies | {display_view_count(thread.view_count)} views | "
        f"{thread.like_count} likes"
    )


async def run_command(args: argparse.Namespace, forum: ForumService) -> int:
    """Execute a parsed command; returns the process exit code."""
    if args.command == 'list':
        cursor = None
        for _ in range(max(args.pages, 1)):
            page = await forum.list_threads(args.category, cursor, args.page_size)
            if not page.success:
                print(f"Error: {page.error}", file=sys.stderr)
                return 1
            for thread in page.threads:
                print(format_thread(thread))
            if not page.has_more:
                break
            cursor = page.cursor
        return 0

    if args.command == 'search':
        result = await forum.search(args.term, args.category)
        if not result.success:
            print(f"Error: {result.error}", file=sys.stderr)
            return 1
        for thread in result.threads:
            print(format_thread(thread))
        print(f"{len(result.threads)} threads found")
        return 0

    if args.command == 'show':
        result = await forum.open_thread(args.thread_id, viewer_key='cli')
        if not result.success:
            print(f"Error: {result.error}", file=sys.stderr)
            return 1
        print(format_thread(result.thread))
        print(result.thread.content)
        replies = await forum.get_replies(args.thread_id)
        if not replies.success:
            print(f"Error: {replies.error}", file=sys.stderr)
            return 1
        for reply in replies.replies:
            created = reply.created_at.strftime('%Y-%m-%d %H:%M') if reply.created_at else '-'
            print(f"  - {reply.author_name} ({created}): {reply.content}")
        return 0

    if args.command == 'delete':
        result = await forum.delete_thread(args.thread_id)
        if not result.success:
            print(f"Error: {result.error}", file=sys.stderr)
            return 1
        print(f"Deleted thread {args.thread_id}")
        return 0

    if args.command == 'reconcile':
        result = await forum.reconcile_reply_count(args.thread_id)
        if not result.success:
            print(f"Error: {result.error}", file=sys.stderr)
            return 1
        print(f"replyCount {result.previous_count} -> {result.reply_count}")
        return 0

    print(f"Unknown command: {args.command}", file=sys.stderr)
    return 2


def main(argv: Optional[list] = None) -> int:
    """
    Main application entry point.

    Initializes configuration, logging, and the document store, then runs
    the requested command.
    """
    args = parse_arguments(argv)

    config_path = Path(args.config) if args.config else None
    config_manager = ConfigManager(config_path)

    storage_config = config_manager.get_storage_config()
    forum_config = config_manager.get_forum_config()
    logging_config = config_manager.get_logging_config()

    if args.log_level:
        logging_config.level = args.log_level

    log_path = config_manager.expand_path(logging_config.log_path)
    setup_logging(
        logging_config.level,
        log_path,
        logging_config.max_log_size,
        logging_config.backup_count
    )

    logger = logging.getLogger(__name__)

    db_path = config_manager.expand_path(storage_config.db_path)
    store = SQLDocumentStore(db_path, echo=storage_config.echo)
    store.initialize_database()

    forum = ForumService(store, forum_config, get_error_handler())

    try:
        return asyncio.run(run_command(args, forum))
    finally:
        store.close()
        logger.info("Course Forum command finished")


if __name__ == '__main__':
    sys.exit(main())
