from __future__ import annotations

import argparse
import os
import sys
from importlib import metadata
from pathlib import Path

import tomllib
from rich.console import Console

from .core import ReportCallback, process_markdown
from .dictionary import DictionaryError, load_dictionary, sort_dictionary_file, validate_dictionary
from .document import MarkdownParseError
from .patches import PatchError
from .tools import (
    DEFAULT_DICT_FILENAME,
    DEFAULT_DICT_REPO,
    DictionaryDownloadError,
    init_dictionary,
    update_dictionary,
)


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("rubi")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _default_dict_path() -> str:
    return os.environ.get("RUBI_DICT") or DEFAULT_DICT_FILENAME


def _default_repo() -> str:
    return os.environ.get("RUBI_DICT_REPO") or DEFAULT_DICT_REPO


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"rubi {__version__}",
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="rubi",
        description=(
            "Add <ruby> pronunciation hints for dictionary terms in a Markdown file. "
            "Code, raw HTML and link destinations are left untouched."
        ),
        epilog=(
            "commands:\n"
            "  init         download dict.yaml from GitHub\n"
            "  dict update  replace dict.yaml with the latest version from GitHub\n"
            "  dict sort    sort the entries of a dictionary file"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    _add_version_flag(ap)
    ap.add_argument("input_file", nargs="?", help="Markdown file to process")
    ap.add_argument(
        "-d",
        "--dict",
        dest="dict_path",
        default=_default_dict_path(),
        help="Dictionary file path (default: $RUBI_DICT or %(default)s).",
    )
    ap.add_argument("-w", "--write", action="store_true", help="Write the result back to the input file.")
    ap.add_argument(
        "-s",
        "--scan",
        action="store_true",
        help="Scan mode: annotate every dictionary term instead of only words marked with ':rubi'.",
    )
    ap.add_argument(
        "--first-only",
        action="store_true",
        help="In scan mode, annotate only the first occurrence of each term.",
    )
    ap.add_argument("-c", "--check", action="store_true", help="Check the dictionary and exit.")
    ap.add_argument(
        "--dry-run",
        action="store_true",
        help="Report the changes that would be made without applying them.",
    )
    return ap


def build_init_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="rubi init", description="Download dict.yaml from GitHub.")
    _add_version_flag(ap)
    ap.add_argument(
        "--repo",
        default=_default_repo(),
        help="GitHub repository to download dict.yaml from, as owner/repo (default: %(default)s).",
    )
    ap.add_argument("--overwrite", action="store_true", help="Replace an existing dictionary file.")
    ap.add_argument(
        "-d",
        "--dict",
        dest="dict_path",
        default=_default_dict_path(),
        help="Where to write the dictionary (default: %(default)s).",
    )
    return ap


def build_dict_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="rubi dict", description="Dictionary maintenance commands.")
    _add_version_flag(ap)
    subparsers = ap.add_subparsers(dest="dict_cmd")

    update = subparsers.add_parser("update", help="Replace the dictionary with the latest version from GitHub.")
    update.add_argument(
        "--repo",
        default=_default_repo(),
        help="GitHub repository to download dict.yaml from, as owner/repo (default: %(default)s).",
    )
    update.add_argument(
        "-d",
        "--dict",
        dest="dict_path",
        default=_default_dict_path(),
        help="Where to write the dictionary (default: %(default)s).",
    )

    sort = subparsers.add_parser("sort", help="Sort dictionary entries case-insensitively.")
    sort.add_argument("input_path", help="Dictionary file to sort.")
    sort.add_argument("output_path", nargs="?", help="Write here instead of rewriting the input.")
    return ap


def _console_reporter(console: Console) -> ReportCallback:
    def _report(message: str) -> None:
        style = "yellow" if message.startswith("warning:") else "dim"
        console.print(message, style=style, markup=False, highlight=False, soft_wrap=True)

    return _report


def _write_stdout(data: bytes) -> None:
    stream = getattr(sys.stdout, "buffer", None)
    if stream is None:
        sys.stdout.write(data.decode("utf-8", errors="replace"))
        return
    sys.stdout.flush()
    stream.write(data)
    stream.flush()


def _validate_main_args(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    if args.check:
        if args.input_file:
            parser.print_usage(sys.stderr)
            raise SystemExit("the -c flag cannot be used with an input file")
        if args.scan or args.first_only or args.write or args.dry_run:
            raise SystemExit(
                "the -c flag cannot be used with other processing flags (-s, --first-only, -w, --dry-run)"
            )
        return
    if args.scan:
        if not args.input_file:
            parser.print_usage(sys.stderr)
            raise SystemExit("an input file is required for scan mode (-s)")
        return
    if args.first_only:
        raise SystemExit("the --first-only flag is only valid in -s (scan) mode")
    if not args.input_file:
        parser.print_usage(sys.stderr)
        raise SystemExit("an input file is required for manual mode")


def _run_check(dict_path: str) -> int:
    try:
        count = validate_dictionary(dict_path)
    except DictionaryError as exc:
        raise SystemExit(str(exc)) from exc
    print(f"Dictionary at '{dict_path}' is valid ({count} terms).")
    return 0


def _run_main(parser: argparse.ArgumentParser, args: argparse.Namespace) -> int:
    _validate_main_args(parser, args)
    if args.check:
        return _run_check(args.dict_path)

    try:
        dictionary = load_dictionary(args.dict_path)
    except DictionaryError as exc:
        raise SystemExit(str(exc)) from exc

    input_path = Path(args.input_file)
    try:
        content = input_path.read_bytes()
    except OSError as exc:
        raise SystemExit(f"failed to read file '{input_path}': {exc}") from exc

    reporter = _console_reporter(Console(stderr=True))
    try:
        processed = process_markdown(
            content,
            dictionary,
            scan=args.scan,
            first_only=args.first_only,
            dry_run=args.dry_run,
            report=reporter,
        )
    except (MarkdownParseError, PatchError) as exc:
        raise SystemExit(f"failed to process markdown: {exc}") from exc

    if args.write and not args.dry_run:
        try:
            input_path.write_bytes(processed)
        except OSError as exc:
            raise SystemExit(f"failed to write to file '{input_path}': {exc}") from exc
        print(f"File '{input_path}' has been updated.")
    else:
        _write_stdout(processed)
    return 0


def _run_init(args: argparse.Namespace) -> int:
    print(f"Initializing {args.dict_path} from {args.repo}...")
    try:
        target = init_dictionary(args.repo, args.dict_path, overwrite=args.overwrite)
    except DictionaryDownloadError as exc:
        raise SystemExit(str(exc)) from exc
    print(f"Successfully downloaded dict.yaml to {target}.")
    return 0


def _run_dict(args: argparse.Namespace) -> int:
    if args.dict_cmd == "update":
        print(f"Updating {args.dict_path} from {args.repo}...")
        try:
            target = update_dictionary(args.repo, args.dict_path)
        except DictionaryDownloadError as exc:
            raise SystemExit(str(exc)) from exc
        print(f"Successfully downloaded dict.yaml to {target}.")
        return 0

    if args.dict_cmd == "sort":
        output_path = args.output_path or args.input_path
        try:
            count = sort_dictionary_file(args.input_path, output_path)
        except DictionaryError as exc:
            raise SystemExit(str(exc)) from exc
        print(f"Sorted {count} terms into {output_path}.")
        return 0

    raise SystemExit("A dict subcommand is required (update, sort). Use --help for options.")


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    if argv and argv[0] == "init":
        init_args = build_init_parser().parse_args(argv[1:])
        return _run_init(init_args)
    if argv and argv[0] == "dict":
        dict_args = build_dict_parser().parse_args(argv[1:])
        return _run_dict(dict_args)

    parser = build_parser()
    if not argv or argv[0] == "help":
        parser.print_help()
        return 0

    args = parser.parse_args(argv)
    return _run_main(parser, args)


if __name__ == "__main__":
    raise SystemExit(main())
