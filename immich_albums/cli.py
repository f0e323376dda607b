#!/usr/bin/env python3
# Copyright (c) 2025 Luc Vincent. All Rights Reserved.
"""
Command-line interface for Immich Albums.
Provides commands to run a sync and inspect the Immich server.
"""

import argparse
import signal
import sys
import threading

from .config import load_config, validate_config
from .errors import ConnectionFailure, SyncCancelled
from .immich_client import ImmichClient
from .paths import album_folder_name


def _client_for(config) -> ImmichClient:
    return ImmichClient(
        config.immich.url,
        config.immich.api_token,
        timeout=config.immich.timeout_seconds,
    )


def cmd_check_config(args, config) -> int:
    """Show configuration problems."""
    errors = validate_config(config)
    print(f"Config: {config.config_path or '(defaults)'}")
    if not errors:
        print("Configuration OK")
        return 0
    for error in errors:
        print(f"  - {error}")
    return 1


def cmd_test_connection(args, config) -> int:
    """Check that Immich answers and count the albums it returns."""
    if not config.immich.api_token:
        print("Error: Immich API token not configured")
        return 1

    with _client_for(config) as client:
        if not client.test_connection():
            print(f"Error: Could not reach Immich at {config.immich.url}")
            return 1
        try:
            albums = client.list_albums(include_shared=False)
        except ConnectionFailure as e:
            print(f"Error: {e}")
            return 1

    print(f"Connected - {len(albums)} albums found")
    return 0


def cmd_albums(args, config) -> int:
    """List remote albums and the folder each maps to."""
    with _client_for(config) as client:
        try:
            albums = client.list_albums(config.immich.include_shared_albums)
        except ConnectionFailure as e:
            print(f"Error: {e}")
            return 1

    if not albums:
        print("No albums found.")
        return 0

    print("Immich Albums")
    print("=" * 60)
    taken = set()
    for album in albums:
        folder = album_folder_name(album.name, album.album_id, taken)
        taken.add(folder)
        shared = " (shared)" if album.shared else ""
        print(f"{album.name or '(unnamed)'}{shared}")
        print(f"   {album.asset_count} assets -> {folder}/")
    return 0


def cmd_sync(args, config) -> int:
    """Run one sync and print the summary."""
    from .sync import SyncService

    cancel_event = threading.Event()

    def on_interrupt(signum, frame):
        print("\nCancelling sync...")
        cancel_event.set()

    signal.signal(signal.SIGINT, on_interrupt)

    def on_progress(value: float) -> None:
        if args.progress:
            print(f"Progress: {value:.0f}%")

    service = SyncService(config)
    try:
        summary = service.sync(cancel_event=cancel_event, progress_callback=on_progress)
    except ConnectionFailure as e:
        print(f"Error: {e}")
        return 1
    except SyncCancelled:
        print("Sync cancelled.")
        return 130

    if summary is None:
        print("Sync skipped; run 'check-config' for details.")
        return 1

    print("Sync Summary")
    print("=" * 40)
    print(f"Albums:      {summary.albums}")
    print(f"Symlinks:    {summary.links_created}")
    print(f"Converted:   {summary.converted} ({summary.rotated} auto-rotated)")
    print(f"Unchanged:   {summary.unchanged}")
    print(f"Removed:     {summary.files_removed} files, {summary.directories_removed} folders")
    print(f"Errors:      {summary.errors}")
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Immich Albums - mirror Immich albums as symlinks",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  immich-albums-cli sync              Run one sync now
  immich-albums-cli test-connection   Check the Immich server
  immich-albums-cli albums            List albums and target folders
  immich-albums-cli check-config      Validate the configuration

Environment:
  IMMICH_API_TOKEN    Immich API key (overrides config file)
  IMMICH_API_URL      Immich URL (overrides config file)
        """
    )
    parser.add_argument("-c", "--config", help="Path to configuration file")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    sync = subparsers.add_parser("sync", help="Run one sync now")
    sync.add_argument("--progress", action="store_true", help="Print progress percentages")

    subparsers.add_parser("test-connection", help="Check the Immich server")
    subparsers.add_parser("albums", help="List albums and target folders")
    subparsers.add_parser("check-config", help="Validate the configuration")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(0)

    commands = {
        "sync": cmd_sync,
        "test-connection": cmd_test_connection,
        "albums": cmd_albums,
        "check-config": cmd_check_config,
    }

    config = load_config(args.config)
    sys.exit(commands[args.command](args, config))


if __name__ == "__main__":
    main()
