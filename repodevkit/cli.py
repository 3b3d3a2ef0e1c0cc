#!/usr/bin/env python3
# repodevkit/cli.py
"""
repodevkit CLI - repository maintenance commands

How it works:
- global flags select the trees (--tree, repeatable), the specs file and debug logging
- `clean` analyzes the store and removes (or, with --dry-run, lists) obsolete files
- `pkgs` lists the packages available in the store or the ones still missing,
  optionally in build order
- messages go to stderr through rich, results go to stdout (plain or --json)
"""

from __future__ import annotations

import os
import re
import sys
import json
import argparse
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.markup import escape

from . import __version__
from . import config as config_mod
from .backends import BACKENDS, new_backend
from .cleaner import RepoCleaner
from .errors import ConfigError, DevkitError
from .knife import RepoKnife
from .lister import RepoList
from .logging import configure_logging, get_logger
from .tree import load_trees

logger = get_logger("cli")

console = Console(stderr=True)


# -----------------------
# Small pretty helpers
# -----------------------
def print_ok(msg: str):
    console.print(f"[bold green]✔[/] {escape(msg)}", highlight=False)

def print_warn(msg: str):
    console.print(f"[bold yellow]![/] {escape(msg)}", highlight=False)

def print_err(msg: str):
    console.print(f"[bold red]✖[/] {escape(msg)}", highlight=False)

def print_info(msg: str):
    console.print(f"[cyan]{escape(msg)}[/cyan]", highlight=False)


class DevkitArgumentParser(argparse.ArgumentParser):
    """Usage errors exit with status 1 like every other fatal error."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


# -----------------------
# Argparse wiring
# -----------------------
def _add_backend_args(p: argparse.ArgumentParser):
    g = p.add_argument_group("backend")
    g.add_argument("--backend", choices=BACKENDS, default="local", help="artifact store backend")
    g.add_argument("--path", help="local backend: directory with the artifacts")
    g.add_argument("--s3-bucket", help="s3 backend: bucket (or $S3_BUCKET)")
    g.add_argument("--s3-endpoint", help="s3 backend: endpoint host[:port] or URL (or $S3_ENDPOINT)")
    g.add_argument("--s3-access-key", help="s3 backend: access key (or $S3_ACCESS_KEY)")
    g.add_argument("--s3-secret-key", help="s3 backend: secret key (or $S3_SECRET_KEY)")
    g.add_argument("--s3-region", help="s3 backend: region (or $S3_REGION)")
    g.add_argument("--s3-no-tls", action="store_true", help="s3 backend: plain http")
    g.add_argument("--http-namespace", help="http backend: namespace")
    g.add_argument("--http-profile", help="http backend: profile from the profile store")
    g.add_argument("--http-master-url", help="http backend: service URL")
    g.add_argument("--http-api-key", help="http backend: API key")
    p.add_argument("--verbose", "-v", action="store_true", help="show every per-file decision")


def make_parser():
    ap = DevkitArgumentParser(prog="repodevkit", description="Artifact repository maintenance devkit")
    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("--tree", "-t", action="append", default=[], help="path of a recipe tree (repeatable)")
    ap.add_argument("--specs-file", "-s", help="specs file (or $REPODEVKIT_SPECS)")
    ap.add_argument("--debug", "-d", action="store_true", help="enable debug logging")
    sub = ap.add_subparsers(dest="cmd", parser_class=DevkitArgumentParser)

    # clean
    p_clean = sub.add_parser("clean", help="remove obsolete files from the store")
    _add_backend_args(p_clean)
    p_clean.add_argument("--dry-run", action="store_true", help="only list the files to remove")

    # pkgs
    p_pkgs = sub.add_parser("pkgs", help="list available or missing packages")
    _add_backend_args(p_pkgs)
    mode = p_pkgs.add_mutually_exclusive_group(required=True)
    mode.add_argument("--availables", action="store_true", help="packages present in the store")
    mode.add_argument("--missings", action="store_true", help="packages of the trees not in the store")
    p_pkgs.add_argument("--build-ordered", action="store_true", help="sort missing packages in build order")
    p_pkgs.add_argument("--build-ordered-with-resolve", action="store_true",
                        help="compact the build levels before ordering")
    p_pkgs.add_argument("--filter", action="append", default=[], help="regex on category/name (repeatable)")
    p_pkgs.add_argument("--limit", type=int, default=0, help="max packages to print")
    p_pkgs.add_argument("--json", action="store_true", help="JSON output")

    return ap


def _validate(args, parser: argparse.ArgumentParser):
    if not args.cmd:
        parser.error("a subcommand is required (clean, pkgs)")
    if not args.tree:
        parser.error("at least one --tree is required")
    if args.cmd == "pkgs":
        if args.build_ordered and not args.missings:
            parser.error("--build-ordered requires --missings")
        if args.build_ordered_with_resolve and not args.build_ordered:
            parser.error("--build-ordered-with-resolve requires --build-ordered")
        if args.limit < 0:
            parser.error("--limit must be >= 0")


def backend_options(args) -> Dict[str, Any]:
    env = os.environ
    if args.backend == "s3":
        opts = {
            "bucket": args.s3_bucket or env.get("S3_BUCKET"),
            "endpoint": args.s3_endpoint or env.get("S3_ENDPOINT"),
            "access-key": args.s3_access_key or env.get("S3_ACCESS_KEY"),
            "secret-key": args.s3_secret_key or env.get("S3_SECRET_KEY"),
            "region": args.s3_region or env.get("S3_REGION"),
        }
        if args.s3_no_tls:
            opts["tls"] = "false"
        return opts
    if args.backend == "http":
        return {
            "namespace": args.http_namespace,
            "profile": args.http_profile,
            "master-url": args.http_master_url,
            "api-key": args.http_api_key,
        }
    return {}


def _knife(args, specs) -> RepoKnife:
    tree = load_trees(args.tree)
    backend = new_backend(args.backend, args.path, backend_options(args))
    return RepoKnife(specs, backend, tree, verbose=args.verbose)


# -----------------------
# Commands
# -----------------------
def cmd_clean(args, specs) -> int:
    knife = _knife(args, specs)
    print_info(f"Analyzing {knife.backend.describe()} ...")
    report = RepoCleaner(knife, dry_run=args.dry_run).run()
    if report["failed"]:
        print_warn(f"{len(report['failed'])} file(s) could not be removed")
    if args.dry_run:
        print_ok(f"Dry run completed: {len(report['candidates'])} file(s) to remove")
    else:
        print_ok(f"Clean completed: {len(report['removed'])} file(s) removed")
    return 0


def _compile_filters(patterns: List[str]) -> List[re.Pattern]:
    out = []
    for p in patterns:
        try:
            out.append(re.compile(p))
        except re.error as e:
            raise ConfigError(f"invalid --filter regex {p!r}: {e}") from e
    return out


def cmd_pkgs(args, specs) -> int:
    lister = RepoList(_knife(args, specs))
    if args.availables:
        pkgs: List[Any] = lister.availables()
    elif args.build_ordered:
        pkgs = lister.missings_ordered(with_resolve=args.build_ordered_with_resolve)
    else:
        pkgs = lister.missings()

    filters = _compile_filters(args.filter)
    if filters:
        pkgs = [p for p in pkgs if any(r.search(f"{p.category}/{p.name}") for r in filters)]
    if not args.build_ordered:
        pkgs = sorted(pkgs, key=lambda p: p.fingerprint)
    if args.limit:
        pkgs = pkgs[: args.limit]

    if args.json:
        data = [{"category": p.category, "name": p.name, "version": p.version} for p in pkgs]
        sys.stdout.write(json.dumps(data, indent=2, ensure_ascii=False) + "\n")
    else:
        for p in pkgs:
            sys.stdout.write(p.fingerprint + "\n")
    sys.stdout.flush()
    logger.debug("cli: %d package(s) printed", len(pkgs))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    parser = make_parser()
    args = parser.parse_args(argv)
    _validate(args, parser)

    try:
        specs = config_mod.load(args.specs_file)
    except ConfigError as e:
        print_err(f"Invalid specs: {e}")
        return 1

    setup = configure_logging(specs.logging_config(), debug=args.debug)
    try:
        if args.cmd == "clean":
            return cmd_clean(args, specs)
        return cmd_pkgs(args, specs)
    except DevkitError as e:
        logger.debug("cli: fatal error", exc_info=True)
        print_err(f"Command failed: {e}")
        return 1
    finally:
        setup.close()


if __name__ == "__main__":
    sys.exit(main())
