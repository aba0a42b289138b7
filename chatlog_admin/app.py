"""
Interactive console over the chat logs facade.
Run with: python -m chatlog_admin.app [tier|device|width]
"""

import asyncio
import sys
from datetime import date

from pydantic import ValidationError

from chatlog_admin import config
from chatlog_admin.builder import build_chat_logs_service
from chatlog_admin.errors import ChatLogsError
from chatlog_admin.models.schemas import ExportResult, Notification
from chatlog_admin.services.chat_logs_service import ChatLogsService
from chatlog_admin.services.refresh_scheduler import RefreshScheduler
from chatlog_admin.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)

HELP = """Commands:
  list                      show the current page
  show <session_id>         show a conversation
  search <term>             search (empty term clears)
  filter <category>         all | has_appointment | no_appointment | recent | today
  range <start> [end]       date range YYYY-MM-DD (no args clears)
  sort <key> [asc|desc]     last_activity | message_count | user_name | duration
  clear                     clear search, filters and sort
  page <n>                  go to page
  size <n>                  change page size
  view <mode>               grid | list | table
  delete <session_id>       delete a conversation (asks for confirmation)
  bulk <id> [<id> ...]      delete several conversations
  export <csv|json> [ids]   export selected sessions, or the filtered view
  export-one <fmt> <id>     export one conversation with every message
  export-booked <fmt>       export conversations that led to an appointment
  stats                     conversation statistics
  analyze                   conversion, peak hours and top terms
  reload                    reload from the store
  quit                      exit"""


def _parse_signal(argv: list[str]) -> object:
    if len(argv) < 2:
        return None
    return int(argv[1]) if argv[1].isdigit() else argv[1]


def write_export(result: ExportResult) -> None:
    with open(result.filename, "w", encoding="utf-8") as f:
        f.write(result.content)
    print(f"Wrote {result.filename}")


def print_notification(notification: Notification) -> None:
    marker = "✅" if notification.kind == "success" else "❌"
    print(f"{marker} {notification.message}")


def print_page(service: ChatLogsService) -> None:
    page = service.current_page()
    print(f"\n{service.filter_stats().display_text}")
    for item in page.items:
        last = item.last_activity.strftime("%Y-%m-%d %H:%M") if item.last_activity else "-"
        flag = " [appointment]" if item.has_appointment else ""
        print(
            f"  {item.session_id}  {item.user_name:<24} {item.message_count:>3} msgs  "
            f"{item.duration:<10} {last}{flag}"
        )
    print(f"Page {page.page}/{max(page.total_pages, 1)} ({page.page_size} per page)")


def print_conversation(service: ChatLogsService, session_id: str) -> None:
    with service.interaction("detail"):
        item = service.select(session_id)
        print(f"\n{item.user_name} ({item.user_email or 'no e-mail'})")
        for message in item.messages:
            print(f"  [{message.timestamp}] {message.message_type}: {message.content}")


async def confirm_delete(service: ChatLogsService, session_id: str) -> None:
    service.request_delete(session_id)
    answer = await asyncio.to_thread(input, f"Delete {session_id}? [y/N] ")
    if answer.strip().lower() != "y":
        service.dismiss_delete()
        print("Cancelled.")
        return
    await service.confirm_delete()


async def handle(service: ChatLogsService, command: str, args: list[str]) -> bool:
    """Runs one console command. Returns False when the console should exit."""
    if command in ("quit", "exit"):
        return False
    if command == "help":
        print(HELP)
    elif command == "list":
        print_page(service)
    elif command == "show" and args:
        print_conversation(service, args[0])
    elif command == "search":
        service.set_search_term(" ".join(args))
        print_page(service)
    elif command == "filter" and args:
        service.set_filter(args[0])
        print_page(service)
    elif command == "range":
        start = date.fromisoformat(args[0]) if args else None
        end = date.fromisoformat(args[1]) if len(args) > 1 else None
        service.set_date_range(start, end)
        print_page(service)
    elif command == "sort" and args:
        service.set_sort(args[0], args[1] if len(args) > 1 else None)
        print_page(service)
    elif command == "clear":
        service.clear_filters()
        print_page(service)
    elif command == "page" and args:
        service.go_to_page(int(args[0]))
        print_page(service)
    elif command == "size" and args:
        service.change_page_size(int(args[0]))
        print_page(service)
    elif command == "view" and args:
        service.set_view_mode(args[0])
        print_page(service)
    elif command == "delete" and args:
        await confirm_delete(service, args[0])
    elif command == "bulk" and args:
        result = await service.bulk_delete(args)
        print(f"{result.succeeded} deleted, {result.failed} failed ({result.state})")
    elif command == "export" and args:
        fmt, ids = args[0], args[1:]
        write_export(
            service.export_selection(ids, fmt) if ids else service.export_filtered(fmt)
        )
    elif command == "export-one" and len(args) == 2:
        write_export(service.export_conversation(args[1], args[0]))
    elif command == "export-booked" and args:
        write_export(service.export_appointments(args[0]))
    elif command == "stats":
        print(service.stats().model_dump_json(indent=2))
    elif command == "analyze":
        print(service.analyze().model_dump_json(indent=2))
    elif command == "reload":
        await service.load()
        print_page(service)
    else:
        print(HELP)
    return True


async def run_console(client_signal: object = None) -> None:
    """Initializes the console and runs the command loop."""
    service = build_chat_logs_service(client_signal)
    service.notifier.subscribe(print_notification)

    scheduler = RefreshScheduler(service.refresh, service.interactions, service.profile)

    print(f"\n--- Chat Logs Console ({service.profile.tier}) ---")
    print("Type 'help' for commands, 'quit' to exit.")

    await service.load()
    print_page(service)
    scheduler.start()

    try:
        while True:
            line = await asyncio.to_thread(input, "\nchat-logs> ")
            parts = line.split()
            if not parts:
                continue
            try:
                if not await handle(service, parts[0].lower(), parts[1:]):
                    print("Goodbye.")
                    break
            except (ChatLogsError, ValidationError, ValueError, KeyError) as e:
                logger.warning("command_failed", command=parts[0], error=str(e))
                print(f"Error: {e}")
    finally:
        await scheduler.stop()


def main() -> None:
    try:
        settings = config.check_env_vars()
        configure_logging(settings.log_level, settings.structured_logging)
        asyncio.run(run_console(_parse_signal(sys.argv)))
    except ValidationError as e:
        logger.error("configuration_error", error=str(e))
    except ChatLogsError as e:
        logger.error("console_start_failed", error=str(e))
    except (KeyboardInterrupt, EOFError):
        print("\nGoodbye.")


if __name__ == "__main__":
    main()
