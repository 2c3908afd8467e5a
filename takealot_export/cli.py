from __future__ import annotations

import argparse
import sys
import threading
from pathlib import Path
from typing import List, Optional

from .config import (
    DEFAULT_AMOUNT,
    DEFAULT_SORT,
    data_dir,
    load_environment,
    load_settings,
)
from .coordinator import CANCELLED, DONE, PHASE_DETAILS, QueryResult, RequestCoordinator
from .errors import ParseError, TakealotExportError
from .logging_config import configure_logging
from .storage import FileBlobStore
from .types import DetailRow


MESSAGES = {
    "stage_resolve": "[1/4] Resolving category path: {path}",
    "resolved": "Department: {department}. Categories: {categories}. Excluded: {excluded}",
    "stage_fetch": "[2/4] Fetching {amount} products sorted by {sort}…",
    "progress_listing": "  listing: {loaded} products",
    "progress_details": "  details: [{loaded}/{total}] ({percent}%)",
    "stage_save": "[3/4] Saving to Excel (downloading images)…",
    "stage_done": "[4/4] Finalizing",
    "success": "Export completed. Saved products: {count}",
    "file": "File: {path}",
    "error": "Export error: {error}",
    "cancelled": "Query was cancelled",
    "interrupted": "Interrupted by user",
    "help_desc": (
        "Export Takealot products from a department/category to Excel.\n"
        'Example: "Garden, Pool & Patio:DIY Tools & Machinery" '
        '--exclude "Power Tools & Machinery"'
    ),
    "help_path": 'Category path "Department:Category[:SubCategory]"',
    "help_exclude": "Sub-category to exclude (repeatable)",
    "help_amount": "Number of products to export",
    "help_sort": (
        "Sort: ReleaseDate+Descending, Rating+Descending, Price+Descending, "
        "Price+Ascending, Relevance or Field:<name>+<Ascending|Descending>"
    ),
    "help_out": "Path to Excel output (default products.xlsx)",
    "help_template": "Path to Excel template (optional)",
    "help_log_level": "Override the configured log level",
}

POLL_INTERVAL = 0.5  # seconds


def _msg(key: str, **kwargs) -> str:
    return MESSAGES.get(key, "").format(**kwargs)


def _run_with_progress(
    coordinator: RequestCoordinator, query, amount: int, sort: str
) -> QueryResult:
    """Run the query on a worker thread and print the polled progress."""
    outcome: dict = {}

    def target() -> None:
        try:
            outcome["result"] = coordinator.run_query(query, amount=amount, sort=sort)
        except BaseException as exc:  # re-raised on the calling thread
            outcome["error"] = exc

    worker = threading.Thread(target=target, name="query", daemon=True)
    worker.start()
    last = None
    while worker.is_alive():
        worker.join(POLL_INTERVAL)
        state = coordinator.state
        snapshot = (state.phase, state.loaded, state.total)
        if snapshot == last or not state.phase:
            continue
        last = snapshot
        if state.phase == PHASE_DETAILS and state.total:
            percent = int(round(state.loaded * 100 / state.total))
            print(_msg("progress_details", loaded=state.loaded, total=state.total, percent=percent), flush=True)
        else:
            print(_msg("progress_listing", loaded=state.loaded), flush=True)

    if "error" in outcome:
        raise outcome["error"]
    return outcome["result"]


def export_to_excel(
    path: str,
    out_path: str,
    exclude: Optional[List[str]] = None,
    amount: int = DEFAULT_AMOUNT,
    sort: str = DEFAULT_SORT,
    template_path: Optional[str] = None,
    log_level: Optional[str] = None,
) -> List[DetailRow]:
    """High-level convenience function: resolve, fetch and save products to Excel.

    Returns the exported rows.
    """
    load_environment()
    store = FileBlobStore(data_dir())
    settings = load_settings(store)
    configure_logging(log_level or settings.log_level)

    coordinator = RequestCoordinator.from_settings(settings, store)
    try:
        print(_msg("stage_resolve", path=path), flush=True)
        query = coordinator.resolve(path, exclude)
        print(
            _msg(
                "resolved",
                department=query.department.name,
                categories=", ".join(c.name for c in query.categories) or "-",
                excluded=", ".join(c.name for c in query.excluded) or "-",
            ),
            flush=True,
        )

        print(_msg("stage_fetch", amount=amount, sort=sort), flush=True)
        result = _run_with_progress(coordinator, query, amount, sort)
        if result.status == CANCELLED:
            raise TakealotExportError(_msg("cancelled"))
        if result.status != DONE:
            raise TakealotExportError(result.error)

        print(_msg("stage_save"), flush=True)
        payload = coordinator.export(result.rows, template_path=template_path)
        Path(out_path).write_bytes(payload)
        print(_msg("stage_done"), flush=True)
        return result.rows
    finally:
        coordinator.close()


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="takealot-export",
        description=MESSAGES["help_desc"],
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("path", help=MESSAGES["help_path"])
    p.add_argument(
        "-x",
        "--exclude",
        dest="exclude",
        action="append",
        default=[],
        help=MESSAGES["help_exclude"],
    )
    p.add_argument(
        "-a",
        "--amount",
        dest="amount",
        type=int,
        default=DEFAULT_AMOUNT,
        help=MESSAGES["help_amount"],
    )
    p.add_argument(
        "-s",
        "--sort",
        dest="sort",
        default=DEFAULT_SORT,
        help=MESSAGES["help_sort"],
    )
    p.add_argument(
        "-o",
        "--out",
        dest="out_path",
        default="products.xlsx",
        help=MESSAGES["help_out"],
    )
    p.add_argument(
        "-t",
        "--template",
        dest="template_path",
        default=None,
        help=MESSAGES["help_template"],
    )
    p.add_argument(
        "--log-level",
        dest="log_level",
        default=None,
        help=MESSAGES["help_log_level"],
    )
    return p


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_arg_parser()
    args = parser.parse_args(argv)
    try:
        rows = export_to_excel(
            path=args.path,
            out_path=args.out_path,
            exclude=args.exclude,
            amount=args.amount,
            sort=args.sort,
            template_path=args.template_path,
            log_level=args.log_level,
        )
        print(_msg("success", count=len(rows)))
        print(_msg("file", path=args.out_path))
        return 0
    except KeyboardInterrupt:
        print(_msg("interrupted"), file=sys.stderr)
        return 130
    except ParseError as exc:
        print(_msg("error", error=exc), file=sys.stderr)
        return 2
    except (TakealotExportError, OSError) as exc:
        print(_msg("error", error=exc), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
