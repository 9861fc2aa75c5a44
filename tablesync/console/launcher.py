"""Console client for a shared session, optionally starting the dev authority."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import subprocess
import sys
import time
from pathlib import Path
from urllib import error, request

from tablesync.client.config import ClientSettings, load_settings
from tablesync.client.errors import InitializationError, SyncError
from tablesync.client.local_store import LocalStore
from tablesync.client.orchestrator import SessionOrchestrator
from tablesync.client.remote import HttpRemoteAuthority
from tablesync.client.replies import reply_preview
from tablesync.client.startup import (
    EstablishedSession,
    create_session,
    join_session,
    reconnect,
    reset_local_data,
    resolve_identity,
)

logger = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).resolve().parents[2]
HELP_TEXT = "Commands: /roll <dice>, /channel <id>, /channels, /reply <id> <text>, /quit"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    settings = load_settings()
    parser = argparse.ArgumentParser(description="tablesync console client")
    parser.add_argument("--server", default=settings.server_url)
    parser.add_argument("--identity", default=settings.identity or "")
    parser.add_argument("--nickname", default="")
    parser.add_argument("--session-id", type=int, default=None)
    parser.add_argument("--password", default=None)
    parser.add_argument("--create", metavar="NAME", default=None, help="create a new session with this name")
    parser.add_argument("--start-server", action="store_true")
    parser.add_argument("--reset", action="store_true", help="clear local data before starting")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def wait_for_server(server_url: str, timeout_s: float = 8.0) -> bool:
    start = time.time()
    while time.time() - start < timeout_s:
        try:
            with request.urlopen(f"{server_url}/docs", timeout=0.5) as response:
                if int(response.status) < 500:
                    return True
        except (error.URLError, TimeoutError):
            pass
        time.sleep(0.2)
    return False


def maybe_start_server(server_url: str) -> subprocess.Popen[str] | None:
    host_port = server_url.removeprefix("http://")
    host, port = host_port.split(":", maxsplit=1)
    command = [
        sys.executable,
        "-m",
        "uvicorn",
        "tablesync.backend.api:app",
        "--host",
        host,
        "--port",
        port,
    ]
    process = subprocess.Popen(command, cwd=str(ROOT_DIR), env=os.environ.copy())
    if wait_for_server(server_url):
        return process
    process.terminate()
    return None


async def establish(
    args: argparse.Namespace,
    remote: HttpRemoteAuthority,
    settings: ClientSettings,
    local_store: LocalStore,
) -> EstablishedSession | None:
    nickname = args.nickname or local_store.preferences().default_nickname
    if args.create:
        return await create_session(
            remote, args.create, nickname, settings.init_timeout, password=args.password, local_store=local_store
        )
    if args.session_id is not None:
        return await join_session(
            remote, args.session_id, nickname, settings.init_timeout, password=args.password, local_store=local_store
        )
    return await reconnect(remote, local_store, settings.init_timeout)


def print_messages(orchestrator: SessionOrchestrator, seen: set[int]) -> None:
    for message in orchestrator.messages:
        if message.id in seen:
            continue
        seen.add(message.id)
        preview = reply_preview(message, orchestrator.messages)
        if preview.is_reply:
            print(f"  ↳ {preview.label}")
        print(f"[{message.id}] {message.author}: {message.content}")


async def chat_loop(orchestrator: SessionOrchestrator) -> None:
    seen: set[int] = set()
    channels = orchestrator.channels
    if channels:
        await orchestrator.select_channel(channels[0].id)
    print(HELP_TEXT)
    while True:
        print_messages(orchestrator, seen)
        line = (await asyncio.to_thread(input, "> ")).strip()
        if not line:
            continue
        if line == "/quit":
            return
        try:
            if line == "/channels":
                for channel in orchestrator.channels + orchestrator.members_channels:
                    print(f"#{channel.id} {channel.name}")
            elif line.startswith("/channel "):
                await orchestrator.select_channel(int(line.split(maxsplit=1)[1]))
                seen.clear()
            elif line.startswith("/reply "):
                _, target, text = line.split(maxsplit=2)
                await orchestrator.send_message(text, reply_to=int(target))
            else:
                await orchestrator.send_message(line)
        except (SyncError, ValueError) as exc:
            print(f"! {exc}")


async def run(args: argparse.Namespace, settings: ClientSettings) -> int:
    local_store = LocalStore.open(settings.config_dir)
    if args.reset:
        reset_local_data(local_store)
    identity = resolve_identity(local_store, args.identity or None)

    async with HttpRemoteAuthority(args.server, identity, timeout=settings.request_timeout) as remote:
        try:
            established = await establish(args, remote, settings, local_store)
        except InitializationError as exc:
            print(f"{exc}. Run again with --reset to clear local data.", file=sys.stderr)
            return 1
        except SyncError as exc:
            print(str(exc), file=sys.stderr)
            return 1
        if established is None:
            print("No session to rejoin. Use --session-id or --create.", file=sys.stderr)
            return 1

        print(f"Joined {established.session.name!r} (session {established.session.id}) as {established.context.nickname}")
        orchestrator = SessionOrchestrator(
            remote,
            established.session.id,
            established.context.nickname,
            intervals=settings.polling,
            local_store=local_store,
        )
        await orchestrator.start()
        try:
            await chat_loop(orchestrator)
        finally:
            await orchestrator.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = load_settings()

    server_process: subprocess.Popen[str] | None = None
    if args.start_server:
        server_process = maybe_start_server(args.server)
        if server_process is None:
            print("Could not start the session authority.", file=sys.stderr)
            return 1
    elif not wait_for_server(args.server):
        print("Session authority unreachable. Use --start-server or run uvicorn manually.", file=sys.stderr)
        return 1

    try:
        return asyncio.run(run(args, settings))
    except (KeyboardInterrupt, EOFError):
        return 0
    finally:
        if server_process is not None:
            server_process.terminate()


if __name__ == "__main__":
    raise SystemExit(main())
