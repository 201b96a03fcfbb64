from __future__ import annotations

import sys
import argparse
import getpass as _getpass

from typing import Any, Dict, List, Optional

from ferry.config import Options, build_options, load_config
from ferry.errors import FerryError, PasswordRequired
from ferry.progressbar import progress_bars
from ferry.transfer import TransferResult, get, put
from ferry.transport import HttpTransport


def _prompt_password(confirm: bool = False) -> bytes:
    pw = _getpass.getpass("Password: ")
    if confirm and _getpass.getpass("Confirm password: ") != pw:
        raise ValueError("passwords do not match")
    return pw.encode("utf-8")


def _encode_password(password: Optional[str]) -> Optional[bytes]:
    return None if password is None else password.encode("utf-8")


def _report_checksums(results: List[TransferResult], stream) -> None:
    for res in results:
        if res.checksum is not None:
            print(f"Checksum: {res.checksum}", file=stream)


def cmd_put(
    files: List[str],
    options: Options,
    *,
    password: Optional[str] = None,
    transport: Optional[HttpTransport] = None,
) -> List[TransferResult]:
    """Upload files (or stdin for ``-``) and print one URL per container.

    Args:
        files: Paths to upload, or ``["-"]``.
        options: Resolved options.
        password: Encryption password; prompted for when encryption is on and
            none is given.
        transport: Alternate transport (defaults to HTTP at ``options.base_url``).
    """
    pw = _encode_password(password)
    if options.encrypt and pw is None:
        pw = _prompt_password(confirm=True)
    transport = transport or HttpTransport(options.base_url, timeout=options.timeout)
    progress = progress_bars(sys.stderr) if options.progress else None
    results = put(options, files, transport, pw, sys.stdout, progress=progress)
    _report_checksums(results, sys.stdout)
    return results


def cmd_get(
    urls: List[str],
    options: Options,
    *,
    password: Optional[str] = None,
    transport: Optional[HttpTransport] = None,
) -> List[TransferResult]:
    """Download, decode and store each URL.

    Encrypted containers prompt for a password when none was given; the
    container header decides, not ``--encrypt``.
    """
    pw = _encode_password(password)
    ask = None
    if pw is None:
        if options.header:
            ask = _prompt_password
        elif options.encrypt:
            pw = _prompt_password()
    transport = transport or HttpTransport(options.base_url, timeout=options.timeout)
    progress = progress_bars(sys.stderr) if options.progress else None
    # keep stdout clean when the payload itself goes there
    report = sys.stderr if options.stdout else sys.stdout

    def _report(res: TransferResult) -> None:
        _report_checksums([res], report)
        if res.summary is not None:
            for path in res.summary.skipped:
                print(f"Warning: skipped unsupported archive entry {path}", file=sys.stderr)
            for warning in res.summary.warnings:
                print(f"Warning: {warning}", file=sys.stderr)
        if not options.stdout:
            print(f"{res.name} -> {res.location} ({res.header.describe()})", file=sys.stderr)

    return get(options, urls, transport, pw, progress=progress, ask_password=ask, on_result=_report)


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("--config", help="JSON config file; command-line flags override its values")
    p.add_argument("--base-url", dest="base_url", help="Transfer service URL (default https://transfer.sh)")
    p.add_argument(
        "--compress",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="gzip the payload (default on)",
    )
    p.add_argument(
        "--encrypt",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="AES-256-OFB encrypt the payload (default off)",
    )
    p.add_argument(
        "--unsalted",
        dest="salted",
        action="store_const",
        const=False,
        default=None,
        help="Use a random IV preamble instead of the OpenSSL 'Salted__' one",
    )
    p.add_argument(
        "--legacy",
        dest="header",
        action="store_const",
        const=False,
        default=None,
        help="No container header; transforms come from the flags on both ends",
    )
    p.add_argument(
        "--tar",
        dest="archive",
        action="store_const",
        const=True,
        default=None,
        help="Bundle inputs into one tar archive (required for directories)",
    )
    p.add_argument("--checksum", action="store_const", const=True, default=None, help="Print SHA-256 of the transferred bytes")
    p.add_argument("--progress", action="store_const", const=True, default=None, help="Show progress bars on stderr")
    p.add_argument("--password", help="Encryption password (prompted if needed)")


def _overrides(args: argparse.Namespace, keys: List[str]) -> Dict[str, Any]:
    return {k: getattr(args, k, None) for k in keys}


_COMMON_KEYS = ["base_url", "compress", "encrypt", "salted", "header", "archive", "checksum", "progress"]


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="ferry",
        description="Stream files to and from a transfer.sh-style service",
        epilog=(
            "Uploads are archived, compressed and encrypted on the fly; a 2-byte header "
            "tells the receiving side which layers to undo."
        ),
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    # put
    ap_put = sub.add_parser("put", help="Upload files")
    ap_put.add_argument("files", nargs="+", help="Files or directories to upload ('-' for stdin)")
    _add_common(ap_put)
    ap_put.add_argument("--max-days", dest="max_days", type=int, help="Server-side expiry in days")
    ap_put.add_argument("--max-downloads", dest="max_downloads", type=int, help="Server-side download limit")
    ap_put.add_argument("--archive-name", dest="archive_name", help="Remote name for --tar uploads (default archive.tar)")

    # get
    ap_get = sub.add_parser("get", help="Download and decode files")
    ap_get.add_argument("urls", nargs="+", help="Resource URLs")
    _add_common(ap_get)
    ap_get.add_argument("--dest", help="Output directory (default .)")
    ap_get.add_argument("--stdout", action="store_const", const=True, default=None, help="Write a raw payload to stdout")

    args = ap.parse_args(argv)
    try:
        file_values = load_config(args.config) if args.config else {}
        if args.cmd == "put":
            options = build_options(
                file_values,
                _overrides(args, _COMMON_KEYS + ["max_days", "max_downloads", "archive_name"]),
            )
            cmd_put(args.files, options, password=args.password)
        elif args.cmd == "get":
            options = build_options(file_values, _overrides(args, _COMMON_KEYS + ["dest", "stdout"]))
            cmd_get(args.urls, options, password=args.password)
        else:
            raise RuntimeError("Unknown command")
    except PasswordRequired as e:
        print(f"Error: {e}. Provide --password.", file=sys.stderr)
        sys.exit(2)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (FerryError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
