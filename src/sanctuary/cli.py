"""Command-line interface for sanctuary.

Provides the main entry point for running the API server, checking a
day's allowance, or running a timed viewing session from the terminal.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path

from sanctuary.timer.session import PlaybackControl

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="sanctuary",
        description="Time-boxed viewing sessions with a daily allowance",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to YAML configuration file (default: config/sanctuary.yaml)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("serve", help="Start the HTTP API server")

    quota_parser = subparsers.add_parser("quota", help="Show the allowance for a program day")
    quota_parser.add_argument("--day", type=int, required=True, help="Program day (1-7)")
    quota_parser.add_argument(
        "--used", type=int, default=0,
        help="Seconds already watched today",
    )

    watch_parser = subparsers.add_parser("watch", help="Run a timed viewing session for a user")
    watch_parser.add_argument("--user", type=str, required=True, help="User id with a stored profile")
    watch_parser.add_argument("--url", type=str, required=True, help="Content URL to watch")
    watch_parser.add_argument("--query", type=str, default="", help="Search query that led here")

    return parser.parse_args(argv)


class ConsolePlayback(PlaybackControl):
    """Reports playback changes on stdout."""

    def pause(self) -> None:
        print("[playback paused]")

    def resume(self) -> None:
        print("[playback resumed]")


def _show_quota(day: int, used: int) -> None:
    from sanctuary import quota

    allowed = quota.allowed_minutes(day)
    remaining = quota.remaining_seconds(day, used)
    print(f"Day {quota.clamp_day(day)}: {quota.format_minutes(allowed)} allowed")
    print(f"Used:      {quota.format_time(used)}")
    print(f"Remaining: {quota.format_time(remaining)} ({quota.describe_remaining(remaining)})")
    if quota.is_program_complete(day):
        print("Program complete.")


async def _fallback_play_url(settings, args, ledger) -> str | None:
    """Run the fallback pipeline for a page that would not embed."""
    from sanctuary.api.server import build_browser, build_storage
    from sanctuary.config.settings import ConfigurationError
    from sanctuary.domain.models import Downloaded, ScreenshotOnly
    from sanctuary.fallback import messages
    from sanctuary.fallback.service import FallbackService

    try:
        storage = build_storage(settings)
    except ConfigurationError as e:
        logger.error("Fallback storage unavailable: %s", e)
        print(messages.MSG_NOT_CONFIGURED)
        return None

    browser = build_browser(settings)
    service = FallbackService(
        browser=browser,
        storage=storage,
        ledger=ledger,
        config=settings.fallback,
        browser_timeout=settings.browser.request_timeout,
    )
    try:
        outcome = await service.acquire(args.url, args.user)
    finally:
        await service.aclose()
        await storage.close()
        if browser is not None:
            await browser.disconnect()

    print(outcome.message)
    if isinstance(outcome, ScreenshotOnly):
        print(f"Preview: {outcome.screenshot_url}")
    if isinstance(outcome, Downloaded):
        return outcome.play_url
    return None


async def _watch(settings, args) -> None:
    """Open a ledger-backed session and count it down on the terminal.

    The content is loaded as a player frame first; a page that refuses
    goes through the fallback pipeline, and the timer only runs when
    something playable came back.
    """
    import httpx

    from sanctuary.api.server import build_ledger
    from sanctuary.domain.models import LowTimeWarning, SessionEnded, TimerEvent, TimeUpdate
    from sanctuary.embed import check_embed, resolve_embed_url
    from sanctuary.ledger.tracker import ViewingSessionTracker
    from sanctuary.quota import format_time
    from sanctuary.timer.runner import TimerRunner

    tracker = ViewingSessionTracker(
        build_ledger(settings),
        persist_interval=settings.timer.persist_interval,
        warning_threshold=settings.timer.warning_threshold,
    )
    session = tracker.begin(args.user, args.query, playback=ConsolePlayback())
    if session is None:
        print("Today's allowance is used up. Fresh start tomorrow.")
        return

    def show(event: TimerEvent) -> None:
        if isinstance(event, TimeUpdate):
            print(f"\r{format_time(event.remaining_seconds)} remaining", end="", flush=True)
        elif isinstance(event, LowTimeWarning):
            print("\nOne minute left.")
        elif isinstance(event, SessionEnded):
            print(f"\nSession ended ({event.reason.value}) after {format_time(event.elapsed_seconds)}")

    session.timer.subscribe(show)
    print(f"Session {session.session_id}")

    player_url = resolve_embed_url(args.url)
    async with httpx.AsyncClient(follow_redirects=True) as client:
        embeds = await check_embed(player_url, client, timeout=settings.timer.embed_load_timeout)
    if not embeds:
        logger.info("Embed of %s failed, trying fallback", player_url)
        player_url = await _fallback_play_url(settings, args, tracker.ledger)
    if player_url is None:
        session.timer.close()
    else:
        print(f"Player: {player_url}")
        runner = TimerRunner(session.timer)
        runner.start()
        try:
            await runner.wait()
        finally:
            await runner.close()
    if not session.recorder.is_finalized:
        logger.warning("Session %s was not fully recorded: %s", session.session_id, session.recorder.last_error)


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the sanctuary CLI."""
    args = parse_args(argv)

    if args.command is None:
        parse_args(["--help"])
        return

    if args.command == "quota":
        _show_quota(args.day, args.used)
        return

    from sanctuary.config.settings import load_settings
    from sanctuary.utils.logging import setup_logging

    settings = load_settings(args.config)
    if args.verbose:
        settings.logging.level = "DEBUG"
    setup_logging(settings.logging)

    if args.command == "serve":
        logger.info("Starting API server on %s:%d", settings.server.host, settings.server.port)
        from sanctuary.api.server import create_app
        import uvicorn

        app = create_app(settings)
        uvicorn.run(app, host=settings.server.host, port=settings.server.port)

    elif args.command == "watch":
        try:
            asyncio.run(_watch(settings, args))
        except KeyboardInterrupt:
            print("\nClosed.")


if __name__ == "__main__":
    main()
