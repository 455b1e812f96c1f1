"""Entry point: python -m reelrelay [serve | download ...]"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys

from reelrelay.infrastructure.logger import logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="reelrelay", description="Telegram to Google Drive video relay")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Run the relay service until interrupted (default)")

    download = sub.add_parser("download", help="Fetch the latest video now and upload it to Drive")
    download.add_argument("--user", required=True, help="Owning user id")
    download.add_argument("--channel", required=True, help="Channel id")
    download.add_argument("--message-id", type=int, default=None, help="Prompt message id to search after")
    download.add_argument("--title", default=None, help="Video title used as the Drive file name")
    return parser


async def serve() -> None:
    from reelrelay.app import RelayApp
    from reelrelay.infrastructure.config import RelaySettings
    from reelrelay.infrastructure.database import AppDatabase
    from reelrelay.ipc.watcher import IpcWatcher

    db = AppDatabase()
    db.init()
    app = RelayApp(RelaySettings.from_env(), db, ipc_watcher=IpcWatcher())

    # Handle graceful shutdown
    shutdown_event = asyncio.Event()

    def signal_handler() -> None:
        logger.info("Received shutdown signal")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    try:
        await app.start()
        await shutdown_event.wait()
    finally:
        await app.shutdown()
        db.close()


async def download(args: argparse.Namespace) -> int:
    from reelrelay.app import RelayApp
    from reelrelay.infrastructure.config import RelaySettings
    from reelrelay.infrastructure.database import AppDatabase
    from reelrelay.relay.types import DownloadAndUploadOptions

    db = AppDatabase()
    db.init()
    try:
        app = RelayApp(RelaySettings.from_env(), db)
        result = await app.download_and_upload_video_to_drive(
            DownloadAndUploadOptions(
                channel_id=args.channel,
                user_id=args.user,
                telegram_message_id=args.message_id,
                video_title=args.title,
            )
        )
    finally:
        db.close()
    print(json.dumps(result.model_dump(), indent=2, ensure_ascii=False))
    return 0 if result.success else 1


def run(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    try:
        if args.command == "download":
            sys.exit(asyncio.run(download(args)))
        asyncio.run(serve())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
