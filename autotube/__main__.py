"""CLI entry point — python -m autotube."""

import argparse
import json
import sys
import time
from pathlib import Path

from .config import CONFIG_FILE, get_automation_settings, run_setup
from .errors import AutotubeError
from .log import log, set_verbose


def build_services(settings: dict | None = None):
    """Store, pipeline, queue, and scheduler wired from config.json."""
    from .production import ProductionPipeline
    from .publish_queue import PublishQueue
    from .scheduler import AutomationScheduler
    from .store import Store

    settings = settings or get_automation_settings()
    store = Store()
    pipeline = ProductionPipeline(
        store,
        stage_retries=settings["stage_retries"],
        default_publish_hour=settings["default_publish_hour"],
    )
    queue = PublishQueue(
        store,
        privacy_status=settings["privacy_status"],
        optimal_days=settings["optimal_days"],
        optimal_hours=settings["optimal_hours"],
    )
    scheduler = AutomationScheduler(store, pipeline, queue, settings=settings)
    return store, pipeline, queue, scheduler


def _print_item(item):
    from .state import ProductionState

    state = ProductionState(item)
    print(f"\n  Production: {item.id}")
    print(f"  Title:      {item.title}")
    print(f"  Status:     {item.status} ({state.progress()}%)")
    print(state.summary())
    print(f"  Priority:   {item.priority}")
    print(f"  Publish at: {item.scheduled_publish_time}")
    simulated = item.simulated_stages()
    if simulated:
        print(f"  Simulated:  {', '.join(simulated)}")
    if item.error:
        print(f"  Error:      {item.error}")


def _print_entry(entry):
    line = f"  [{entry.status:9}] {entry.publish_time}  p{entry.priority:<3} {entry.title}"
    if entry.url:
        line += f"  {entry.url}"
    if entry.error:
        line += f"  ({entry.error})"
    print(line)


def cmd_generate(args, services):
    _, pipeline, queue, scheduler = services
    from .brief import generate_brief

    settings = scheduler.settings
    brief = generate_brief(
        topic=args.topic,
        channel_context=args.context or settings.get("channel_context", ""),
        topics=settings.get("topics") or [],
        store=scheduler.store,
    )
    item = pipeline.process(brief)
    _print_item(item)
    if item.status == "ready" and not args.no_enqueue:
        entry = queue.enqueue(item)
        print(f"\n  Scheduled: {entry.id} at {entry.publish_time}")


def cmd_produce(args, services):
    _, pipeline, queue, _ = services
    from .models import ContentBrief

    if args.resume:
        item = pipeline.resume(args.resume)
    else:
        data = json.loads(Path(args.brief).read_text())
        item = pipeline.process(ContentBrief.from_dict(data))
    _print_item(item)
    if args.enqueue and item.status == "ready":
        entry = queue.enqueue(item)
        print(f"\n  Scheduled: {entry.id} at {entry.publish_time}")


def cmd_queue(args, services):
    _, _, queue, _ = services
    entries = list(queue.due_items()) if args.due else queue.entries()
    if not entries:
        print("  Publish queue is empty.")
        return
    print(f"\n  {'Due' if args.due else 'Queued'} entries ({len(entries)}):\n")
    for entry in entries:
        _print_entry(entry)


def cmd_publish(args, services):
    _, _, queue, _ = services
    entry = queue.publish_by_id(args.id)
    _print_entry(entry)
    if entry.status != "published":
        sys.exit(1)


def cmd_drain(args, services):
    _, _, queue, _ = services
    published = queue.drain()
    print(f"  Published {published} entries.")


def cmd_pause(args, services):
    _print_entry(services[2].pause(args.id))


def cmd_resume(args, services):
    _print_entry(services[2].resume(args.id, args.at))


def cmd_retry(args, services):
    _print_entry(services[2].retry(args.id, args.at))


def cmd_optimize(args, services):
    moved = services[2].optimize_publish_times()
    print(f"  Rescheduled {moved} entries onto optimal slots.")


def cmd_status(args, services):
    store, pipeline, _, scheduler = services
    rows = pipeline.status()
    print(f"\n  Productions ({len(rows)}):\n")
    for row in rows:
        print(f"  [{row['status']:10}] {row['progress']:3d}%  p{row['priority']:<3} {row['title']}  ({row['id']})")
    print("\n  Scheduled tasks:\n")
    for name, task in scheduler.status()["tasks"].items():
        flag = "on " if task["enabled"] else "off"
        print(f"  [{flag}] {name:26} {task['cron']:14} next {task['next_run']}  last {task['last_status'] or '-'}")
    print(f"\n  Store: {json.dumps(store.stats())}")


def cmd_report(args, services):
    print(json.dumps(services[2].report(), indent=2))


def cmd_run(args, services):
    scheduler = services[3]
    scheduler.start()
    print("  Automation running. Ctrl+C to stop.")
    try:
        while True:
            time.sleep(60)
    except KeyboardInterrupt:
        pass
    finally:
        scheduler.stop()


def cmd_tick(args, services):
    fired = services[3].run_pending()
    if fired:
        log(f"Ran tasks: {', '.join(fired)}")


COMMANDS = {
    "generate": cmd_generate,
    "produce": cmd_produce,
    "queue": cmd_queue,
    "publish": cmd_publish,
    "drain": cmd_drain,
    "pause": cmd_pause,
    "resume": cmd_resume,
    "retry": cmd_retry,
    "optimize": cmd_optimize,
    "status": cmd_status,
    "report": cmd_report,
    "run": cmd_run,
    "tick": cmd_tick,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Autotube — scheduled YouTube production and publishing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="cmd")

    sub.add_parser("setup", help="Interactive first-run setup")

    p_gen = sub.add_parser("generate", help="Claude brief -> production -> queue")
    p_gen.add_argument("--topic", default=None, help="Topic (default: rotate configured topics)")
    p_gen.add_argument("--context", default="", help="Channel context")
    p_gen.add_argument("--no-enqueue", action="store_true", help="Produce only")

    p_produce = sub.add_parser("produce", help="Produce a video from a brief JSON file")
    source = p_produce.add_mutually_exclusive_group(required=True)
    source.add_argument("--brief", help="Path to a content brief JSON file")
    source.add_argument("--resume", metavar="ID", help="Resume an interrupted production")
    p_produce.add_argument("--enqueue", action="store_true", help="Schedule when ready")

    p_queue = sub.add_parser("queue", help="List the publish queue")
    p_queue.add_argument("--due", action="store_true", help="Only entries due now")

    for name, help_text in [
        ("publish", "Publish an entry now (entry or production id)"),
        ("pause", "Pause a scheduled entry"),
    ]:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("id")

    for name, help_text in [
        ("resume", "Resume a paused entry"),
        ("retry", "Reschedule a failed entry"),
    ]:
        p = sub.add_parser(name, help=help_text)
        p.add_argument("id")
        p.add_argument("--at", default=None, help="New publish time (ISO-8601)")

    sub.add_parser("drain", help="Publish every due entry")
    sub.add_parser("optimize", help="Move scheduled entries onto optimal slots")
    sub.add_parser("status", help="Productions and scheduled tasks")
    sub.add_parser("report", help="Publishing report (JSON)")
    sub.add_parser("run", help="Run the automation scheduler in the foreground")
    sub.add_parser("tick", help="Run due tasks once (for system cron)")
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        set_verbose(True)

    if not args.cmd:
        parser.print_help()
        return

    if args.cmd == "setup":
        run_setup()
        return

    if not CONFIG_FILE.exists():
        print("  First run detected. Running setup...")
        run_setup()

    services = build_services()
    try:
        COMMANDS[args.cmd](args, services)
    except AutotubeError as e:
        print(f"  Error: {e}")
        sys.exit(1)
    finally:
        services[0].close()


if __name__ == "__main__":
    main()
