#!/usr/bin/env python3

import os
import sys
import json
import getpass
import secrets
import argparse
import logging.config
from typing import List, Optional
from collections import OrderedDict

import uvicorn
import sqlalchemy.exc

from gather_core import settings as _settings
from gather_core.api.api import create_app
from gather_core.persistence import database, models


APP_SECRET_VARIABLE = "SERVER__APP_SECRET"


def get_parser(program: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=program)

    commands = parser.add_subparsers(
        description="Available sub-commands: init, users*, secret, run, systemd, auto",
        dest="command",
        required=True,
        metavar="<command>",
        help="the sub-command to be executed (some have their own subcommands, too)"
    )

    parser_init = commands.add_parser(
        "init",
        description="Initialize the project by creating the config file and the database tables"
    )

    parser_users = commands.add_parser(
        "users",
        description="Manage API end users"
    )
    user_command = parser_users.add_subparsers(
        description="Available actions: show, disable",
        dest="action",
        metavar="<action>",
        required=True,
        help="action to perform for users"
    )
    parser_users_show = user_command.add_parser(
        "show",
        description="Show a list of all users"
    )
    parser_users_disable = user_command.add_parser(
        "disable",
        description="Disable a user, so that its auth token won't be accepted anymore"
    )

    parser_secret = commands.add_parser(
        "secret",
        description="Generate a new app secret as line for the local environment file"
    )

    parser_run = commands.add_parser(
        "run",
        description="Run 'uvicorn' ASGI server to serve the Gather core REST API"
    )

    parser_systemd = commands.add_parser(
        "systemd",
        description="Create a systemd unit file to run the Gather core REST API as system service"
    )

    parser_init.add_argument(
        "--database",
        type=str,
        metavar="url",
        help="Database connection URL including scheme and auth"
    )
    parser_init.add_argument(
        "--no-migrations",
        action="store_true",
        help="Do not apply migrations automatically (not recommended)"
    )

    parser_users_show.add_argument(
        "--json",
        action="store_true",
        help="Print the result in JSON format instead of human-readable text"
    )
    parser_users_show.add_argument(
        "--indent",
        type=int,
        metavar="n",
        help="(JSON-only) Indent the JSON response with n spaces (default: none)"
    )

    parser_users_disable.add_argument(
        "identifier",
        metavar="ID",
        type=int,
        help="Unique ID to identify the user"
    )

    parser_secret.add_argument(
        "--env-file",
        type=str,
        metavar="path",
        help=f"Append the new secret to this file, unless it already defines {APP_SECRET_VARIABLE!r}"
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
        "--workers",
        type=int,
        default=None,
        metavar="n",
        help="Number of worker processes (not valid with --reload)",
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
        default=os.path.join(os.path.abspath("."), "gather_core.service"),
        metavar="p",
        help="Path to the newly created systemd file"
    )

    parser_auto = commands.add_parser(
        "auto",
        description="Deploy and start the server in 'auto mode' using environment variables for first configuration"
    )
    parser_auto.add_argument(
        "--host",
        type=str,
        metavar="host",
        help="Bind TCP socket to this host (overwrite config and environment)"
    )
    parser_auto.add_argument(
        "--port",
        type=int,
        metavar="port",
        help="Bind TCP socket to this port (overwrite config and environment)"
    )
    parser_auto.add_argument(
        "--debug-sql",
        action="store_true",
        help="Enable echoing of database actions (overwrite config and environment)"
    )
    parser_auto.add_argument(
        "--root-path",
        type=str,
        default="",
        metavar="p",
        help="Sub-mount the application below the given path"
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
Description=Gather core REST API server
After=network-online.target
Wants=network-online.target

[Service]
Type=simple
ExecStart={python_executable} -m gather_core run
User={getpass.getuser()}
WorkingDirectory={os.path.abspath(".")}
Restart=always
SyslogIdentifier=gather_core

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

    logging.getLogger("gather_core").info(f"Server running at host {host} port {port}")
    uvicorn.run(
        "gather_core.api:api.app" if args.reload else app,
        port=port,
        host=host,
        reload=args.reload,
        workers=args.workers,
        log_level="debug" if args.debug else "info",
        log_config=settings.logging.model_dump(),
        access_log=not args.no_access_log,
        use_colors=args.use_colors,
        proxy_headers=True,
        root_path=args.root_path
    )
    return 0


def _setup_config(db: Optional[str] = None, init: bool = False) -> _settings.Settings:
    if _settings.find_config_file() is None:
        if init:
            print("No settings file found. A basic config will be created now.")
        _settings.store_configuration(_settings.get_default_core_config(db))
    elif init:
        print(
            "A config file has been found and will be used. If you want a fresh installation, "
            "you should remove the config file and clear the database, then run this command again."
        )

    settings = _settings.Settings()
    if db:
        settings.database.connection = db
    return settings


def init_project(args: argparse.Namespace, no_hint: bool = False) -> int:
    settings = _setup_config(_settings.get_db_from_env(args.database), not no_hint)
    # migrations can't reach an in-memory database, its tables are created directly
    in_memory = settings.database.connection in ("sqlite://", "sqlite:///:memory:")
    if not args.no_migrations and not in_memory:
        database.run_migrations(settings.database.connection)
    database.init(settings.database.connection, settings.database.debug_sql, create_all=in_memory)

    with database.get_new_session() as session:
        try:
            session.query(models.User).count()
        except sqlalchemy.exc.DatabaseError:
            print(
                "No table 'users' found in the database. Please initialize the database first. "
                "Perform the necessary database migrations by running this command without "
                "the '--no-migrations' option.",
                file=sys.stderr
            )
            return 1

    if settings.server.app_secret is None and not no_hint:
        print(
            "\nThere's no app secret configured yet. Nobody can create a new user "
            "without it, because the user creation is protected by the shared secret "
            "of the mobile app. Run this utility with the 'secret' command to generate "
            f"one and store it in the environment variable {APP_SECRET_VARIABLE!r} or in "
            f"the local {_settings.ENV_FILE!r} file (never commit that file!)."
        )

    if not no_hint:
        print("Done.")
    return 0


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
        print(" | ".join([f"{obj[k]!s:<{info[k]}}" for k in info]))


def show_users(args: argparse.Namespace) -> int:
    def _conv(user: models.User) -> dict:
        d = user.schema.model_dump()
        d["events"] = len(user.events)
        d["attendances"] = len(user.attendances)
        return d

    config = _settings.Settings()
    database.init(config.database.connection, config.database.debug_sql)
    with database.get_new_session() as session:
        users = session.query(models.User).all()

        if args.json:
            print(json.dumps([user.schema.model_dump() for user in users], indent=args.indent))
            return 0
        print_table([_conv(user) for user in users], ["id", "name", "active", "events", "attendances", "created"])
    return 0


def disable_user(args: argparse.Namespace) -> int:
    config = _settings.Settings()
    database.init(config.database.connection, config.database.debug_sql)
    with database.get_new_session() as session:
        user: Optional[models.User] = session.get(models.User, args.identifier)
        if user is None:
            print(f"No user with identifier {args.identifier} has been found!", file=sys.stderr)
            return 1
        if not user.active:
            print("This user has already been disabled.")
            return 0

        user.active = False
        session.add(user)
        session.commit()
        print(f"Successfully disabled user {user.id}! Its auth token won't be accepted anymore.")

    return 0


def handle_users(args: argparse.Namespace) -> int:
    return {
        "show": show_users,
        "disable": disable_user
    }[args.action](args)


def generate_secret(args: argparse.Namespace) -> int:
    line = f"{APP_SECRET_VARIABLE}={secrets.token_urlsafe(32)}"

    if args.env_file:
        if os.path.exists(args.env_file):
            with open(args.env_file, "r", encoding="UTF-8") as f:
                content = f.read()
            if any(l.strip().startswith(f"{APP_SECRET_VARIABLE}=") for l in content.splitlines()):
                print(f"File {args.env_file!r} already defines {APP_SECRET_VARIABLE!r}. Aborting!", file=sys.stderr)
                return 1
            prefix = "" if not content or content.endswith("\n") else "\n"
        else:
            prefix = ""
        with open(args.env_file, "a", encoding="UTF-8") as f:
            f.write(f"{prefix}{line}\n")

    print(line)
    return 0


def run_in_auto_mode(args: argparse.Namespace) -> int:
    logger = logging.getLogger("auto")

    # Setup the configuration
    db = _settings.get_db_from_env()
    if _settings.find_config_file() is None and db is None:
        print(
            "Unable to proceed in auto mode. One of the following environment variables "
            "must be set correctly: 'DATABASE__CONNECTION', 'DATABASE_CONNECTION'!",
            file=sys.stderr
        )
        return 1
    conf = _setup_config(db, False)

    # Configure logging as early as feasible
    logging.config.dictConfig(conf.logging.model_dump())

    # Perform database migrations after the config file has been loaded successfully
    database.run_migrations(conf.database.connection)
    if conf.server.app_secret is None:
        logger.warning(
            f"You need to set the environment variable {APP_SECRET_VARIABLE!r} "
            f"in auto mode to allow the creation of new users."
        )

    # Run the API server
    if args.debug_sql:
        conf.database.debug_sql = args.debug_sql
    port = args.port or conf.server.port
    host = args.host or conf.server.host
    app = create_app(settings=conf)
    logging.getLogger("gather_core").info(f"Server running at host {host} port {port}")
    uvicorn.run(
        app,
        port=port,
        host=host,
        reload=False,
        workers=1,
        log_config=conf.logging.model_dump(),
        proxy_headers=True,
        root_path=args.root_path
    )
    return 0


if __name__ == '__main__':
    program_name = sys.argv[0] if not sys.argv[0].endswith("__main__.py") else "gather_core"
    namespace = get_parser(program_name).parse_args(sys.argv[1:])

    command_functions = {
        "run": run_server,
        "init": init_project,
        "users": handle_users,
        "secret": generate_secret,
        "auto": run_in_auto_mode,
        "systemd": handle_systemd
    }
    exit(command_functions[namespace.command](namespace))
