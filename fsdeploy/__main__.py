import argparse
import asyncio
import logging
import sys
from typing import List, Optional

import aiofiles

from fsdeploy.clients.async_client import AsyncFileClient
from fsdeploy.config import DEFAULT_CONFIG_PATH, Config, ConfigError
from fsdeploy.connections import create_client
from fsdeploy.download import download
from fsdeploy.exceptions import FsdeployError
from fsdeploy.log import setup_logging

logger = logging.getLogger("fsdeploy")


class Exit(Exception):
    pass


def load_config(path: Optional[str]) -> Config:
    try:
        config = Config.from_path(path)
    except ConfigError as e:
        raise Exit(f"fatal error: configuration error: {e}")

    for warning in config.get_warnings():
        logger.warning(warning)
    return config


def open_client(config: Config, remote_name: str) -> AsyncFileClient:
    try:
        return create_client(config.get_remote(remote_name))
    except FsdeployError as e:
        raise Exit(f"fatal error: {e}")


async def write_output(data: bytes, output: Optional[str]) -> None:
    if output is None or output == "-":
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()
        return

    async with aiofiles.open(output, "wb") as f:
        await f.write(data)


async def cmd_ls(client: AsyncFileClient, args: argparse.Namespace) -> None:
    async with client:
        entries = await client.list_directory(args.path)

    for entry in sorted(entries, key=lambda e: (not e.is_directory, e.name)):
        if entry.is_directory:
            print(f"{entry.name}/")
        elif entry.is_file:
            size = "" if entry.size is None else f"{entry.size:>12}  "
            print(f"{size}{entry.name}")
        else:
            print(f"?{entry.name}")


async def cmd_get(client: AsyncFileClient, args: argparse.Namespace) -> None:
    async with client:
        data = await client.download_file(args.path)
    await write_output(data, args.output)


async def cmd_put(client: AsyncFileClient, args: argparse.Namespace) -> None:
    async with aiofiles.open(args.local, "rb") as f:
        data = await f.read()

    async with client:
        if not await client.upload_file(args.path, data):
            raise Exit(f"fatal error: upload of '{args.path}' was cancelled")


async def cmd_rm(client: AsyncFileClient, args: argparse.Namespace) -> None:
    async with client:
        if not await client.delete_file(args.path):
            raise Exit(f"fatal error: could not delete '{args.path}'")


async def cmd_rmdir(client: AsyncFileClient, args: argparse.Namespace) -> None:
    async with client:
        if not await client.remove_folder(args.path):
            raise Exit(f"fatal error: could not remove folder '{args.path}'")


REMOTE_COMMANDS = {
    "ls": cmd_ls,
    "get": cmd_get,
    "put": cmd_put,
    "rm": cmd_rm,
    "rmdir": cmd_rmdir,
}


async def cmd_download(args: argparse.Namespace) -> None:
    data = await download(args.url, args.scope or None)
    await write_output(data, args.output)


def cmd_remotes(config: Config) -> None:
    for name, remote_type in sorted(config.list_remotes().items()):
        print(f"{name}\t{remote_type}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fsdeploy", description="transfer files to and from remote storage"
    )
    parser.add_argument(
        "--config",
        default=None,
        help=f"configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument("--log-file", default=None)

    commands = parser.add_subparsers(dest="command", required=True)

    ls = commands.add_parser("ls", help="list a remote directory")
    ls.add_argument("remote")
    ls.add_argument("path", nargs="?", default="/")

    get = commands.add_parser("get", help="download a remote file")
    get.add_argument("remote")
    get.add_argument("path")
    get.add_argument("-o", "--output", default=None)

    put = commands.add_parser("put", help="upload a local file")
    put.add_argument("remote")
    put.add_argument("local")
    put.add_argument("path")

    rm = commands.add_parser("rm", help="delete a remote file")
    rm.add_argument("remote")
    rm.add_argument("path")

    rmdir = commands.add_parser("rmdir", help="remove a remote folder and its content")
    rmdir.add_argument("remote")
    rmdir.add_argument("path")

    dl = commands.add_parser("download", help="download the data of a URL")
    dl.add_argument("url")
    dl.add_argument("-o", "--output", default=None)
    dl.add_argument("--scope", action="append", default=[])

    commands.add_parser("remotes", help="list the configured remotes")

    return parser


def run(args: argparse.Namespace) -> None:
    if args.command == "download":
        asyncio.run(cmd_download(args))
        return

    config = load_config(args.config)

    if args.command == "remotes":
        cmd_remotes(config)
        return

    client = open_client(config, args.remote)
    asyncio.run(REMOTE_COMMANDS[args.command](client, args))


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the fsdeploy application."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose, args.log_file)

    try:
        run(args)
    except Exit as e:
        print(e, file=sys.stderr)
        sys.exit(1)
    except FsdeployError as e:
        logger.debug("command failed", exc_info=True)
        print(f"fatal error: {e}", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"fatal error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
