#!/usr/bin/env python3

import os
import sys
import json
import getpass
import argparse
import logging.config
from typing import List, Optional
from collections import OrderedDict

import uvicorn

from dualnative_core import settings as _settings
from dualnative_core.api.api import create_app, create_system
from dualnative_core.core.catalog import CatalogStore
from dualnative_core.core.identity import ContentIdentityComputer
from dualnative_core.core.system import DualNativeSystem
from dualnative_core.misc.events import LoggingEventSink
from dualnative_core.persistence import database
from dualnative_core.persistence.providers import HTTPResourceProvider


def get_parser(program: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=program)

    commands = parser.add_subparsers(
        description="Available sub-commands: init, run, systemd, catalog*, cid",
        dest="command",
        required=True,
        metavar="<command>",
        help="the sub-command to be executed (some have their own subcommands, too)"
    )

    parser_init = commands.add_parser(
        "init",
        description="Initialize the project by creating the config file and the database tables"
    )

    parser_run = commands.add_parser(
        "run",
        description="Run 'uvicorn' ASGI server to serve the Dual-Native core REST API"
    )

    parser_systemd = commands.add_parser(
        "systemd",
        description="Create a systemd unit file to run the Dual-Native core REST API as system service"
    )

    parser_catalog = commands.add_parser(
        "catalog",
        description="Inspect and manage the catalog of resources"
    )
    catalog_command = parser_catalog.add_subparsers(
        description="Available actions: show, validate, purge",
        dest="action",
        metavar="<action>",
        required=True,
        help="action to perform for the catalog"
    )
    parser_catalog_show = catalog_command.add_parser(
        "show",
        description="Show the (optionally filtered) entries of the catalog"
    )
    parser_catalog_validate = catalog_command.add_parser(
        "validate",
        description="Compare the content identities of the catalog with the current resources"
    )
    parser_catalog_purge = catalog_command.add_parser(
        "purge",
        description="Remove all entries of the catalog (the resources themselves are kept)"
    )

    parser_cid = commands.add_parser(
        "cid",
        description="Compute the content identity (CID) of a JSON document"
    )

    parser_init.add_argument(
        "--database",
        type=str,
        metavar="url",
        help="Database connection URL including scheme and auth"
    )
    parser_init.add_argument(
        "--force",
        action="store_true",
        help="Overwrite an existing config file with the default configuration"
    )

    parser_run.add_argument(
        "--host",
        type=str,
        metavar="host",
        help="Bind TCP socket to this host (overwrite config)"
    )
    parser_run.add_argument(
        "--port",
        type=int,
        metavar="port",
        help="Bind TCP socket to this port (overwrite config)"
    )
    parser_run.add_argument(
        "--config",
        type=str,
        metavar="config",
        default="config.json",
        help="Overwrite the config file (defaults to 'config.json')"
    )
    parser_run.add_argument(
        "--debug",
        action="store_true",
        help="Enable full debug mode including tracebacks via HTTP (probably insecure)"
    )
    parser_run.add_argument(
        "--debug-sql",
        action="store_true",
        help="Enable echoing of database actions (overwrites config)"
    )
    parser_run.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload"
    )
    parser_run.add_argument(
        "--no-access-log",
        action="store_true",
        help="Disable access logs"
    )
    parser_run.add_argument(
        "--use-colors",
        action="store_true",
        help="Enable colorized output (may break file logs!)"
    )
    parser_run.add_argument(
        "--root-path",
        type=str,
        default="",
        metavar="p",
        help="Sub-mount the application below the given path"
    )

    parser_systemd.add_argument(
        "--force",
        action="store_true",
        help="Allow overwriting existing files"
    )
    parser_systemd.add_argument(
        "--path",
        type=str,
        default=os.path.join(os.path.abspath("."), "dualnative_core.service"),
        metavar="p",
        help="Path to the newly created systemd file"
    )

    for p in (parser_catalog_show, parser_catalog_validate):
        p.add_argument(
            "--json",
            action="store_true",
            help="Print the result in JSON format instead of human-readable text"
        )
        p.add_argument(
            "--indent",
            type=int,
            metavar="n",
            help="(JSON-only) Indent the JSON response with n spaces (default: none)"
        )

    parser_catalog_show.add_argument(
        "--since",
        type=str,
        metavar="ts",
        help="Only show entries updated after this ISO-8601 timestamp"
    )
    parser_catalog_show.add_argument(
        "--status",
        type=str,
        metavar="s",
        help="Only show entries with this status (e.g. 'publish')"
    )
    parser_catalog_show.add_argument(
        "--type",
        type=str,
        metavar="t",
        help="Only show entries of this resource type"
    )
    parser_catalog_show.add_argument(
        "--limit",
        type=int,
        default=0,
        metavar="n",
        help="Show at most n entries (default: all)"
    )
    parser_catalog_show.add_argument(
        "--offset",
        type=int,
        default=0,
        metavar="n",
        help="Skip the first n entries"
    )

    parser_catalog_validate.add_argument(
        "--live",
        action="store_true",
        help="Fetch the resources via their public MR URLs instead of the local database"
    )

    parser_catalog_purge.add_argument(
        "--yes",
        action="store_true",
        help="Don't ask for confirmation"
    )

    parser_cid.add_argument(
        "file",
        type=str,
        help="Path to the JSON document ('-' to read from stdin)"
    )
    parser_cid.add_argument(
        "--exclude",
        type=str,
        nargs="*",
        metavar="key",
        help="Keys excluded from the identity (overwrites the configured exclude fields)"
    )

    return parser


def handle_systemd(args: argparse.Namespace) -> int:
    python_executable = sys.executable
    if sys.executable is None or sys.executable == "":
        python_executable = "python3"
        print(
            "Revise the 'ExecStart' parameter, since the Python "
            "interpreter path could not be determined reliably.",
            file=sys.stderr
        )

    content = f"""[Unit]
Description=Dual-Native core REST API server
After=network-online.target
Wants=network-online.target

[Service]
Type=simple
ExecStart={python_executable} -m dualnative_core run
User={getpass.getuser()}
WorkingDirectory={os.path.abspath(".")}
Restart=always
SyslogIdentifier=dualnative_core

[Install]
WantedBy=multi-user.target
"""

    if os.path.exists(args.path) and not args.force:
        print(f"File {args.path!r} already exists. Aborting!", file=sys.stderr)
        return 1

    with open(args.path, "w") as f:
        f.write(content)

    print(
        f"Successfully created the new file {args.path!r}. Now, create a "
        f"symlink from /lib/systemd/system/ to that file. Then use 'systemctl "
        f"daemon-reload' and enable your new service. Check that it works afterwards."
    )

    return 0


def run_server(args: argparse.Namespace) -> int:
    if args.debug:
        print("Do not start the server this way during production!", file=sys.stderr)

    _settings.CONFIG_PATHS.insert(0, args.config)
    try:
        settings = _settings.Settings()
    except ValueError:
        print("Ensure that the configuration file is valid. Please correct any errors.", file=sys.stderr)
        raise

    if args.debug:
        settings.logging.root["level"] = "DEBUG"
        for handler in settings.logging.handlers:
            settings.logging.handlers[handler]["level"] = "DEBUG"
    if args.debug_sql:
        settings.database.debug_sql = args.debug_sql

    port = args.port
    if port is None:
        port = settings.server.port
    host = args.host
    if host is None:
        host = settings.server.host

    app = create_app(settings=settings)

    logging.getLogger("dualnative_core").info(f"Server running at host {host} port {port}")
    uvicorn.run(
        "dualnative_core.api:api.app" if args.reload else app,
        port=port,
        host=host,
        reload=args.reload,
        log_level="debug" if args.debug else "info",
        log_config=settings.logging.model_dump(),
        access_log=not args.no_access_log,
        use_colors=args.use_colors,
        proxy_headers=True,
        root_path=args.root_path
    )
    return 0


def init_project(args: argparse.Namespace) -> int:
    path = os.path.abspath(_settings.CONFIG_PATHS[0])
    if os.path.exists(path) and not args.force:
        print(
            "A config file has been found and will be used. If you want a fresh installation, "
            "you should remove the config file and clear the database, then run this command again."
        )
        config = _settings.Settings()
    else:
        print(f"No settings file found. A basic config will be created as {path!r}.")
        config = _settings.get_default_core_config(_settings.get_db_from_env(args.database))
        _settings.store_configuration(config, path)

    database.init(config.database.connection, config.database.debug_sql)
    print("Done.")
    return 0


def _load_system() -> DualNativeSystem:
    config = _settings.Settings()
    logging.config.dictConfig(config.logging.model_dump())
    if "database" in (config.profile.storage, config.profile.provider):
        database.init(config.database.connection, config.database.debug_sql)
    return create_system(config, LoggingEventSink())


def print_table(objs: List[dict], keys: Optional[List[str]] = None):
    info = OrderedDict()
    if keys:
        for k in keys:
            info[k] = len(k)
    for obj in objs:
        for key in obj:
            if keys and key not in keys:
                continue
            if key not in info:
                info[key] = len(key)
            info[key] = max(len(str(obj.get(key))), info.get(key))
    print(" | ".join([f"{k:<{info[k]}}" for k in info]))
    print("-+-".join(["-" * info[k] for k in info]))
    for obj in objs:
        print(" | ".join([f"{obj.get(k)!s:<{info[k]}}" for k in info]))


def show_catalog(args: argparse.Namespace) -> int:
    system = _load_system()
    filters = {k: v for k, v in (("status", args.status), ("type", args.type)) if v is not None}
    catalog = system.get_catalog(args.since, filters, args.limit, args.offset)

    if args.json:
        print(json.dumps(catalog.model_dump(mode="json", by_alias=True, exclude_none=True), indent=args.indent))
        return 0
    print_table(
        [{**entry.metadata, **entry.model_dump(by_alias=True, exclude={"metadata"})} for entry in catalog.items],
        ["rid", "content_id", "updatedAt", "status", "type", "mr"]
    )
    print(f"\n{len(catalog.items)} of {catalog.pagination.total} entries, last update at {catalog.updated_at}")
    return 0


def validate_catalog(args: argparse.Namespace) -> int:
    system = _load_system()
    if args.live:
        def resolve(rid: str) -> Optional[str]:
            entry = system.catalog.get(rid)
            return entry and entry.mr

        store = CatalogStore(
            system.storage,
            system.events,
            system.config.http_profile,
            HTTPResourceProvider(resolve, system.config.validation_timeout),
            system.identity
        )
        inconsistencies = []
        checked = 0
        for batch in store.batches(system.config.catalog_batch_size):
            inconsistencies.extend(store.validate(batch))
            checked += len(batch)
    else:
        result = system.validate_catalog()
        inconsistencies = result.inconsistencies
        checked = result.checked

    if args.json:
        print(json.dumps([i.model_dump(mode="json", exclude_none=True) for i in inconsistencies], indent=args.indent))
    elif inconsistencies:
        print_table(
            [i.model_dump(mode="json") for i in inconsistencies],
            ["rid", "status", "catalog_cid", "live_cid", "reason"]
        )
    else:
        print(f"All {checked} catalog entries are consistent.")
    return 1 if inconsistencies else 0


def purge_catalog(args: argparse.Namespace) -> int:
    system = _load_system()
    if not args.yes:
        answer = input(f"Remove all {len(system.catalog)} catalog entries? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted.")
            return 1
    if not system.catalog.purge():
        print("Failed to purge the catalog. Check the logs for details.", file=sys.stderr)
        return 1
    print("Successfully purged the catalog.")
    return 0


def handle_catalog(args: argparse.Namespace) -> int:
    return {
        "show": show_catalog,
        "validate": validate_catalog,
        "purge": purge_catalog
    }[args.action](args)


def compute_cid(args: argparse.Namespace) -> int:
    try:
        if args.file == "-":
            content = json.load(sys.stdin)
        else:
            with open(args.file, "r", encoding="UTF-8") as f:
                content = json.load(f)
    except (OSError, ValueError) as exc:
        print(f"Failed to read a JSON document from {args.file!r}: {exc}", file=sys.stderr)
        return 1

    exclude = args.exclude
    if exclude is None:
        _settings.SETTINGS_CREATE_NONEXISTENT = False
        _settings.SETTINGS_LOG_ERROR_FUNCTION = None
        exclude = _settings.Settings().profile.exclude_fields
    print(ContentIdentityComputer(exclude).compute(content))
    return 0


if __name__ == '__main__':
    program_name = sys.argv[0] if not sys.argv[0].endswith("__main__.py") else "dualnative_core"
    namespace = get_parser(program_name).parse_args(sys.argv[1:])

    command_functions = {
        "run": run_server,
        "init": init_project,
        "systemd": handle_systemd,
        "catalog": handle_catalog,
        "cid": compute_cid
    }
    exit(command_functions[namespace.command](namespace))
