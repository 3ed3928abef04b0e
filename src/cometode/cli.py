"""Local command line front-end for reviewing problems.

例: `cometode due`, `cometode preview 4`, `cometode review 4 2`
"""

from __future__ import annotations

import argparse
import sys
from datetime import date
from typing import Optional, Sequence

from .catalog import load_catalog
from .cir import format_review_date, get_quality_label
from .config import settings
from .errors import CometodeError
from .logging import configure_logging, logger
from .models.common import ProblemSet, ProgressStatus, Quality
from .service import ReviewService
from .store import open_store


def _parse_date(raw: str) -> date:
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM-DD, got {raw!r}") from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cometode", description="Spaced repetition for coding interview problems.")
    parser.add_argument("--db", default=None, help=f"SQLite DB path (default: {settings.cometode_db_path})")
    parser.add_argument("--catalog", default=None, help="Problem catalog JSON (default: packaged catalog)")
    parser.add_argument("--today", type=_parse_date, default=None, help="Override today's date (YYYY-MM-DD)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create or migrate the database and load the catalog")

    p_due = sub.add_parser("due", help="List problems due for review")
    p_due.add_argument("--set", dest="problem_set", choices=[s.value for s in ProblemSet], default=ProblemSet.all.value)
    p_due.add_argument("--limit", type=int, default=None)

    p_show = sub.add_parser("show", help="Show scheduling state for a problem")
    p_show.add_argument("neet_id", type=int)

    p_preview = sub.add_parser("preview", help="Show the interval each rating would give")
    p_preview.add_argument("neet_id", type=int)

    p_review = sub.add_parser("review", help="Rate a problem (0=Again 1=Hard 2=Good 3=Easy)")
    p_review.add_argument("neet_id", type=int)
    p_review.add_argument("quality", type=float)

    p_history = sub.add_parser("history", help="Show review history for a problem")
    p_history.add_argument("neet_id", type=int)
    p_history.add_argument("--limit", type=int, default=None)

    p_stats = sub.add_parser("stats", help="Show progress counts")
    p_stats.add_argument("--set", dest="problem_set", choices=[s.value for s in ProblemSet], default=ProblemSet.all.value)

    p_mode = sub.add_parser("interview-mode", help="Show or toggle interview mode")
    p_mode.add_argument("state", nargs="?", choices=["on", "off"])
    return parser


def _run(args: argparse.Namespace, service: ReviewService) -> None:
    today = args.today or date.today()
    store = service.store

    if args.command == "init":
        stats = service.stats(today=today)
        print(f"Database ready at {store.db_path}: {stats.total} problems, {stats.practiced} practiced.")

    elif args.command == "due":
        items = service.due(today=today, problem_set=args.problem_set, limit=args.limit)
        if not items:
            print("Nothing due today.")
        for item in items:
            print(
                f"{item.problem.neet_id:>4}  {item.problem.title:<40} {item.problem.difficulty.value:<6} "
                f"due {format_review_date(item.progress.next_review_date)}  interval {item.progress.interval}d"
            )

    elif args.command == "show":
        problem = service.require_problem(args.neet_id)
        progress = service.progress(args.neet_id)
        next_date = format_review_date(progress.next_review_date) if progress.next_review_date else "-"
        print(f"{problem.neet_id} {problem.title} [{problem.difficulty.value}]")
        print(
            f"status={progress.status.value} streak={progress.consecutive_successes} "
            f"interval={progress.interval}d ease={progress.ease_factor:.2f} "
            f"success_rate={progress.success_rate:.0%} reviews={progress.total_reviews} next={next_date}"
        )

    elif args.command == "preview":
        previews = service.preview(args.neet_id, today=today)
        for q in Quality:
            print(f"{int(q)} {get_quality_label(q):<5} -> {previews[q]}d")

    elif args.command == "review":
        outcome = service.review(args.neet_id, args.quality, today=today)
        print(
            f"{outcome.problem.title}: rated {get_quality_label(outcome.result.quality)}, "
            f"next review in {outcome.after.interval}d on {format_review_date(outcome.result.next_review_date)}"
        )

    elif args.command == "history":
        service.require_problem(args.neet_id)
        for entry in store.get_history(args.neet_id, limit=args.limit):
            print(
                f"{entry.review_date.isoformat()}  {get_quality_label(entry.quality):<5} "
                f"{entry.interval_before}d -> {entry.interval_after}d  "
                f"ease {entry.ease_factor_before:.2f} -> {entry.ease_factor_after:.2f}"
            )

    elif args.command == "stats":
        stats = service.stats(today=today, problem_set=args.problem_set)
        print(
            f"total={stats.total} practiced={stats.practiced} due_today={stats.due_today} "
            f"{ProgressStatus.new.value}={stats.new} {ProgressStatus.learning.value}={stats.learning} "
            f"{ProgressStatus.reviewing.value}={stats.reviewing} completion={stats.completion_percentage}%"
        )

    elif args.command == "interview-mode":
        if args.state is not None:
            service.set_interview_mode(args.state == "on")
        print(f"interview mode: {'on' if service.interview_mode else 'off'}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    configure_logging()

    try:
        catalog = load_catalog(args.catalog or settings.cometode_catalog_path)
        with open_store(args.db or settings.cometode_db_path, catalog=catalog) as store:
            _run(args, ReviewService(store))
    except CometodeError as exc:
        logger.error("command_failed", command=args.command, error=str(exc), error_type=type(exc).__name__)
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
