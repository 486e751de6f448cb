from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from janus.config.paths import DATA_DIR, IMPORTS_DIR, ensure_data_dirs
from janus.config.settings import get_settings
from janus.db.models import AccountType
from janus.utils.exceptions import StructuralError


def _cmd_init_db(_: argparse.Namespace) -> int:
    from janus.db.migrate import migrate

    migrate()
    print("Initialized database schema.")
    return 0


def _cmd_paths(_: argparse.Namespace) -> int:
    ensure_data_dirs()
    print(f"DATA_DIR={DATA_DIR}")
    print(f"IMPORTS_DIR={IMPORTS_DIR}")
    print(f"DATABASE_URL={get_settings().database_url}")
    return 0


def _cmd_analyze_statement(args: argparse.Namespace) -> int:
    import pandas as pd

    sheets = pd.read_excel(args.path, sheet_name=None, header=None, nrows=args.rows)
    print(f"Analyzing {args.path}")
    print(f"Number of worksheets: {len(sheets)}")
    wanted = {label.upper() for label in get_settings().statement_worksheets}
    for index, (name, frame) in enumerate(sheets.items(), start=1):
        marker = "*" if str(name).strip().upper() in wanted else " "
        print(f"{marker} Worksheet {index}: {name!r} ({frame.shape[0]} rows x {frame.shape[1]} cols shown)")
        if args.all or marker == "*":
            with pd.option_context("display.max_columns", None, "display.width", 200):
                print(frame.to_string())
    return 0


def _cmd_import_statement(args: argparse.Namespace) -> int:
    from janus.db.repository import insert_import_batch, session_scope
    from janus.db.migrate import migrate
    from janus.ingest.statement_import import import_statement_file

    account_type = AccountType(args.account_type) if args.account_type else None
    try:
        result = import_statement_file(args.path, account_type=account_type)
    except StructuralError as exc:
        print(f"Import failed: {exc}", file=sys.stderr)
        return 2

    imported_count = len(result.imported)
    if not args.dry_run:
        engine = migrate()
        with session_scope(engine) as session:
            imported_count = insert_import_batch(session, args.user, result).inserted

    print(json.dumps(result.to_response(imported_count).to_dict(), indent=2))
    return 0


def _cmd_quote(args: argparse.Namespace) -> int:
    from janus.providers.quotes import StooqQuoteProvider

    provider = StooqQuoteProvider()
    failed = 0
    for ticker in args.tickers:
        quote = provider.get_quote(ticker)
        if quote is None:
            failed += 1
            print(f"{ticker}: no quote")
            continue
        change = quote.change_percent
        change_text = f" ({change:+.2f}%)" if change is not None else ""
        print(
            f"{ticker} [{quote.symbol}] close={quote.close} open={quote.open} "
            f"high={quote.high} low={quote.low} volume={quote.volume} "
            f"as_of={quote.as_of.isoformat()}{change_text}"
        )
    return 1 if failed else 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Janus developer CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sp_init_db = subparsers.add_parser("init-db", help="Create/update local database schema")
    sp_init_db.set_defaults(func=_cmd_init_db)

    sp_paths = subparsers.add_parser("paths", help="Print configured project paths")
    sp_paths.set_defaults(func=_cmd_paths)

    sp_analyze = subparsers.add_parser(
        "analyze-statement", help="Print the worksheets and first rows of a broker export"
    )
    sp_analyze.add_argument("path", type=Path)
    sp_analyze.add_argument("--rows", type=int, default=20, help="Rows to print per worksheet.")
    sp_analyze.add_argument(
        "--all", action="store_true", help="Print every worksheet, not only the cash history."
    )
    sp_analyze.set_defaults(func=_cmd_analyze_statement)

    sp_import = subparsers.add_parser("import-statement", help="Import an XTB statement")
    sp_import.add_argument("path", type=Path)
    sp_import.add_argument("--user", required=True, help="Owner of the imported transactions.")
    sp_import.add_argument(
        "--account-type",
        choices=[member.value for member in AccountType],
        default=None,
        help="Override the account type inferred from row comments.",
    )
    sp_import.add_argument(
        "--dry-run", action="store_true", help="Parse and report without writing to the database."
    )
    sp_import.set_defaults(func=_cmd_import_statement)

    sp_quote = subparsers.add_parser("quote", help="Fetch latest quotes from Stooq")
    sp_quote.add_argument("tickers", nargs="+", help="Tickers such as CDR.PL or AAPL.US")
    sp_quote.set_defaults(func=_cmd_quote)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
