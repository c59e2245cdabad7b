"""
StoryCanvas - Storyboard Canvas Engine
======================================

Command-line entry point. Loads the persisted canvas, talks to the remote
workflow backend and writes the canvas back.

Commands:
    projects                          List remote projects (book ids)
    sync BOOK_ID                      Merge a project's shots into its storyboard
    show                              Print the storyboards on the canvas
    generate BOOK_ID SHOT_ID FILE_ID  Start a video render and wait for it

Example:
    python main.py sync 42
    python main.py generate 42 7 file_abc file_def
"""

import argparse
import logging
import sys
import threading

# ============================================================================
# LOGGING INITIALIZATION
# ============================================================================
# Logging is configured at the top of main(), before any command runs, once
# --verbose has decided the console level.
from storycanvas.utils.logger import setup_logging, shutdown_logging

from storycanvas.core import config
from storycanvas.core.canvas import CanvasState
from storycanvas.core.canvas_service import CanvasService, bind_scheduler
from storycanvas.core.cards import StoryboardData
from storycanvas.core.merge import sync_storyboard
from storycanvas.core.task_scheduler import TaskScheduler
from storycanvas.integrations.workflow_client import WorkflowAPIError, WorkflowClient
from storycanvas.utils.notify import Notifier
from storycanvas.utils.persistence import StatePersistence, attach_autosave, load_canvas


def cmd_projects(args, canvas, service, scheduler):
    projects = service.get_all_projects()
    if not projects:
        print("No projects found")
        return 0
    for project in projects:
        print(f"{project.book_id}\t{project.count:>4} shots\t{project.title}")
    return 0


def cmd_sync(args, canvas, service, scheduler):
    items = service.get_project_shots(args.book_id)
    if not items:
        print(f"No shots found for book {args.book_id}")
        return 1

    data = StoryboardData.from_items(items, title=args.title or args.book_id)
    storyboard = sync_storyboard(canvas, args.book_id, data)
    print(f"Storyboard {storyboard.id} now has {len(storyboard.image_cards())} image card(s)")
    return 0


def cmd_show(args, canvas, service, scheduler):
    if not canvas.storyboards:
        print("Canvas is empty")
        return 0
    for storyboard in canvas.storyboards:
        print(f"[{storyboard.id}] {storyboard.title} (book {storyboard.book_id})")
        for card in storyboard.cards:
            if card.type.value == "image":
                print(f"    image #{card.id} shot={card.shot_id} {card.title!r} url={card.image_url or '-'}")
            else:
                state = "ready" if card.is_ready else "not ready"
                print(f"    player #{card.id} {state}, {len(card.playlist)} frame(s)")
        for conn in storyboard.connections:
            print(f"    {conn.from_id} -> {conn.to_id}")
    return 0


def cmd_generate(args, canvas, service, scheduler):
    done = threading.Event()
    outcome = {"code": 1}

    def _success(result):
        print(f"Video ready: {result.output}")
        outcome["code"] = 0
        done.set()

    def _error(error):
        print(f"Video generation failed: {error}")
        done.set()

    def _timeout():
        print("Video generation is still running; check again later")
        done.set()

    bind_scheduler(
        service.client,
        scheduler,
        Notifier(),
        max_poll_count=args.max_polls,
        on_success=_success,
        on_error=_error,
        on_timeout=_timeout,
    )

    result = service.generate_video(args.file_ids, args.book_id, args.shot_id, prompt=args.prompt)
    if not result.execute_id:
        print(f"Video generation finished synchronously: {result.data_json}")
        return 0

    print(f"Started run {result.execute_id}, polling every {scheduler.poll_interval_ms / 1000:.0f}s...")
    done.wait()
    return outcome["code"]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="storycanvas", description=__doc__.split("\n\n")[1])
    parser.add_argument("--state", help="Canvas state file (default: %(default)s)", default=str(config.STATE_PATH))
    parser.add_argument("--token", help=f"API token (default: ${config.API_TOKEN_ENV})")
    parser.add_argument("--verbose", action="store_true", help="Show debug output on the console")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("projects", help="List remote projects").set_defaults(func=cmd_projects)

    sync = sub.add_parser("sync", help="Merge a project's shots into its storyboard")
    sync.add_argument("book_id")
    sync.add_argument("--title", help="Storyboard title (default: the book id)")
    sync.set_defaults(func=cmd_sync)

    sub.add_parser("show", help="Print the canvas").set_defaults(func=cmd_show)

    generate = sub.add_parser("generate", help="Render a video for one shot")
    generate.add_argument("book_id")
    generate.add_argument("shot_id")
    generate.add_argument("file_ids", nargs="+", help="Uploaded image file ids or image URLs")
    generate.add_argument("--prompt", default="")
    generate.add_argument("--max-polls", type=int, default=config.DEFAULT_MAX_POLL_COUNT)
    generate.set_defaults(func=cmd_generate)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(console_level=logging.DEBUG if args.verbose else logging.WARNING)
    logger = logging.getLogger(__name__)

    persistence = StatePersistence(args.state)
    canvas = CanvasState()
    scheduler = TaskScheduler()

    try:
        load_canvas(canvas, persistence)
        attach_autosave(canvas, persistence)

        service = CanvasService(WorkflowClient(token=args.token))
        return args.func(args, canvas, service, scheduler)

    except WorkflowAPIError as e:
        logger.error(f"Workflow API error: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 2
    finally:
        scheduler.clear_all_tasks()
        canvas.shutdown()
        persistence.close()
        shutdown_logging()


# ============================================================================
# APPLICATION ENTRY POINT
# ============================================================================
if __name__ == "__main__":
    sys.exit(main())
