"""
CLI utility for managing manga chapter ingestion.

Usage:
    python cli.py init-db                               # Create tables
    python cli.py add-work <title>                      # Add a work to the catalog
    python cli.py register <work_id> <url> [<url>...]   # Register an ingestion job
    python cli.py list-jobs                             # List all jobs
    python cli.py check <job_id>                        # Run a job now
    python cli.py enqueue <job_id>                      # Queue a job run for the worker
    python cli.py preview <url> [--chapters 1-5 7]      # Parse a source without importing
    python cli.py import-chapters <work_id> <url>       # Import chapters from one source
    python cli.py import-work <url> [--chapters 1-5]     # Create a work from a source page
    python cli.py sources                               # List supported sources
    python cli.py check-sources                         # Parse every source of every job
    python cli.py backfill                              # Assign missing schedule hours
    python cli.py run-scheduler                         # Start the hourly scheduler
"""
import argparse
import logging
import sys
from database import SessionLocal, init_db
from models import ParsingFrequency, Work
from errors import IngestionError, NoSourceAvailable
from config import settings


def _orchestrator():
    from orchestrator import build_orchestrator
    return build_orchestrator()


def _print_progress(event):
    percent = f" {event.percentage}%" if event.percentage is not None else ""
    print(f"  [{event.stage}/{event.status}]{percent} {event.message}")


def cmd_init_db(args):
    """Create database tables."""
    init_db()
    print("Database tables created")


def cmd_add_work(args):
    """Add a work to the catalog."""
    db = SessionLocal()
    try:
        work = Work(title=args.title, description=args.description)
        db.add(work)
        db.commit()
        print(f"Created work {work.id}: {work.title}")
    finally:
        db.close()


def cmd_register(args):
    """Register an ingestion job for a work."""
    from catalog import SqlCatalogStore
    from job_store import JobStore
    from jobs import JobService
    from sources import build_registry

    service = JobService(JobStore(), SqlCatalogStore(), build_registry())
    try:
        job = service.create(
            work_id=args.work_id,
            sources=args.urls,
            frequency=ParsingFrequency(args.frequency),
            schedule_hour=args.hour,
        )
    except IngestionError as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"Created job {job.id} for work {job.work_id} ({job.frequency.value}, hour {job.schedule_hour:02d})")


def cmd_list_jobs(args):
    """List all ingestion jobs."""
    from job_store import JobStore

    jobs = JobStore().list_jobs()[:args.limit]

    print(f"\n{'ID':<5} {'Work':<6} {'Freq':<8} {'Hour':<5} {'On':<4} {'Last checked':<20} {'Sources'}")
    print("-" * 100)

    for job in jobs:
        hour = f"{job.schedule_hour:02d}" if job.schedule_hour is not None else "-"
        checked = job.last_checked.strftime("%Y-%m-%d %H:%M:%S") if job.last_checked else "never"
        enabled = "yes" if job.enabled else "no"
        print(f"{job.id:<5} {job.work_id:<6} {job.frequency.value:<8} {hour:<5} {enabled:<4} {checked:<20} "
              f"{', '.join(job.source_list())}")

    print(f"\nTotal: {len(jobs)} jobs")


def cmd_check(args):
    """Run a job immediately."""
    orchestrator = _orchestrator()
    try:
        result = orchestrator.run_job(args.job_id, progress=_print_progress if args.verbose else None)
    except NoSourceAvailable as e:
        print(f"✗ {e.message}")
        for error in e.errors:
            print(f"    {error}")
        sys.exit(1)
    except IngestionError as e:
        print(f"✗ {e}")
        sys.exit(1)

    if result is None:
        print(f"Job {args.job_id} is disabled")
        return

    print(f"✓ Imported {len(result.imported)} chapters from {result.used_source_locator}")
    for chapter in result.imported:
        print(f"    {chapter.identifier:<8} {chapter.name} ({chapter.page_count} pages)")
    for error in result.errors:
        print(f"  ! {error}")


def cmd_enqueue(args):
    """Queue a job run for the RQ worker."""
    from ingestion_queue import IngestionQueue

    try:
        queue_job_id = IngestionQueue().enqueue_job(args.job_id)
    except IngestionError as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"Queued job {args.job_id} as {queue_job_id}")


def cmd_preview(args):
    """Parse a source and list its chapters."""
    try:
        parsed = _orchestrator().preview(args.url, args.chapters)
    except (IngestionError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"\nTitle:    {parsed.title}")
    if parsed.alternative_titles:
        print(f"Also:     {'; '.join(parsed.alternative_titles)}")
    if parsed.author:
        print(f"Author:   {parsed.author}")
    if parsed.artist:
        print(f"Artist:   {parsed.artist}")
    if parsed.genres:
        print(f"Genres:   {', '.join(parsed.genres)}")
    print(f"Chapters: {len(parsed.chapters)}\n")

    for chapter in parsed.chapters[:args.limit]:
        number = f"{chapter.number:g}" if chapter.number is not None else "-"
        print(f"  {number:<8} {chapter.name}")
    if len(parsed.chapters) > args.limit:
        print(f"  ... {len(parsed.chapters) - args.limit} more")


def cmd_import_chapters(args):
    """Import chapters of one source into a work."""
    try:
        imported = _orchestrator().import_from_source(
            args.work_id, args.url, args.chapters, progress=_print_progress,
        )
    except (IngestionError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    print(f"✓ Imported {len(imported)} chapters")


def cmd_import_work(args):
    """Create a work from a source page and import its chapters."""
    overrides = {
        "title": args.title,
        "description": args.description,
        "genres": args.genres,
        "type": args.type,
    }
    try:
        result = _orchestrator().import_work(args.url, args.chapters, overrides, progress=_print_progress)
    except (IngestionError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    print(f"✓ Created work {result.work.id}: {result.work.title}")
    if result.cover_url:
        print(f"  Cover: {result.cover_url}")
    print(f"  Imported {len(result.imported)} chapters")


def cmd_sources(args):
    """List supported source families."""
    from sources import build_registry

    for site in build_registry().supported_sites():
        print(f"{site['family']:<12} {', '.join(site['hosts'])}")


def cmd_check_sources(args):
    """Parse every source of every job and report the result."""
    checks = _orchestrator().check_sources()

    print(f"\n{'Job':<5} {'Chapters':<9} {'Source':<60} {'Title / error'}")
    print("-" * 110)
    for check in checks:
        detail = check.title if check.error is None else f"ERROR: {check.error}"
        print(f"{check.job_id:<5} {check.chapter_count:<9} {check.locator[:58]:<60} {detail}")

    failed = sum(1 for c in checks if c.error)
    print(f"\nTotal: {len(checks)} sources, {failed} failing")


def cmd_backfill(args):
    """Assign schedule hours to jobs that have none."""
    count = _orchestrator().backfill_schedule_hours()
    print(f"Assigned schedule hours to {count} jobs")


def cmd_run_scheduler(args):
    """Start the hourly scheduler (blocks)."""
    import scheduler
    scheduler.main()


def main():
    """Main CLI entry point."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    parser = argparse.ArgumentParser(
        description="Manga Chapter Ingestion CLI"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    init_parser = subparsers.add_parser("init-db", help="Create database tables")
    init_parser.set_defaults(func=cmd_init_db)

    add_work_parser = subparsers.add_parser("add-work", help="Add a work to the catalog")
    add_work_parser.add_argument("title", help="Work title")
    add_work_parser.add_argument("--description", default=None)
    add_work_parser.set_defaults(func=cmd_add_work)

    register_parser = subparsers.add_parser("register", help="Register an ingestion job")
    register_parser.add_argument("work_id", type=int)
    register_parser.add_argument("urls", nargs="+", help="Source URLs, in try order")
    register_parser.add_argument(
        "--frequency",
        choices=[f.value for f in ParsingFrequency],
        default=ParsingFrequency.DAILY.value,
    )
    register_parser.add_argument(
        "--hour",
        type=int,
        choices=range(24),
        default=None,
        help="Schedule hour (UTC); derived from the ids if omitted"
    )
    register_parser.set_defaults(func=cmd_register)

    list_jobs_parser = subparsers.add_parser("list-jobs", help="List ingestion jobs")
    list_jobs_parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum number of jobs to show"
    )
    list_jobs_parser.set_defaults(func=cmd_list_jobs)

    check_parser = subparsers.add_parser("check", help="Run a job now")
    check_parser.add_argument("job_id", type=int)
    check_parser.add_argument("-v", "--verbose", action="store_true", help="Print progress events")
    check_parser.set_defaults(func=cmd_check)

    enqueue_parser = subparsers.add_parser("enqueue", help="Queue a job run for the worker")
    enqueue_parser.add_argument("job_id", type=int)
    enqueue_parser.set_defaults(func=cmd_enqueue)

    preview_parser = subparsers.add_parser("preview", help="Parse a source without importing")
    preview_parser.add_argument("url")
    preview_parser.add_argument("--chapters", nargs="*", default=None, help='e.g. 1-5 7')
    preview_parser.add_argument("--limit", type=int, default=30, help="Chapters to print")
    preview_parser.set_defaults(func=cmd_preview)

    import_parser = subparsers.add_parser("import-chapters", help="Import chapters from one source")
    import_parser.add_argument("work_id", type=int)
    import_parser.add_argument("url")
    import_parser.add_argument("--chapters", nargs="*", default=None, help='e.g. 1-5 7')
    import_parser.set_defaults(func=cmd_import_chapters)

    import_work_parser = subparsers.add_parser("import-work", help="Create a work from a source page")
    import_work_parser.add_argument("url")
    import_work_parser.add_argument("--chapters", nargs="*", default=None, help='e.g. 1-5 7')
    import_work_parser.add_argument("--title", help="Override the parsed title")
    import_work_parser.add_argument("--description", help="Override the parsed description")
    import_work_parser.add_argument("--genres", nargs="*", default=None, help="Override the parsed genres")
    import_work_parser.add_argument("--type", help="Work type, e.g. manhwa")
    import_work_parser.set_defaults(func=cmd_import_work)

    sources_parser = subparsers.add_parser("sources", help="List supported sources")
    sources_parser.set_defaults(func=cmd_sources)

    check_sources_parser = subparsers.add_parser("check-sources", help="Parse every job source")
    check_sources_parser.set_defaults(func=cmd_check_sources)

    backfill_parser = subparsers.add_parser("backfill", help="Assign missing schedule hours")
    backfill_parser.set_defaults(func=cmd_backfill)

    scheduler_parser = subparsers.add_parser("run-scheduler", help="Start the hourly scheduler")
    scheduler_parser.set_defaults(func=cmd_run_scheduler)

    # Parse arguments
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Run command
    args.func(args)


if __name__ == "__main__":
    main()
