"""CLI entry point for ani-harvest.

Subcommands delegate to handlers in commands/; every handler prints a JSON
result and returns the process exit code.
"""

import argparse
import sys

from commands import jobs, scrape
from utils.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ani-harvest",
        description="Resolve playable stream URLs for anime episodes.",
    )
    parser.add_argument("--debug", "-d", action="store_true", help="Verbose logging on stderr")
    subparsers = parser.add_subparsers(dest="command", required=True)

    episode = subparsers.add_parser("episode", help="Scrape one episode")
    episode.add_argument("title")
    episode.add_argument("--episode", "-e", type=int, default=1)
    episode.add_argument("--timeout", type=float, help="Seconds allowed for the browser stage")
    episode.add_argument("--retries", type=int, help="Total attempts")
    episode.set_defaults(handler=scrape.episode)

    all_parser = subparsers.add_parser("all", help="Scrape every listed episode of a title")
    all_parser.add_argument("title")
    all_parser.add_argument("--max-episodes", type=int)
    all_parser.add_argument("--timeout", type=float)
    all_parser.add_argument("--retries", type=int, default=2)
    all_parser.set_defaults(handler=scrape.all_episodes)

    batch = subparsers.add_parser("batch", help="Scrape a list of episode numbers")
    batch.add_argument("title")
    batch.add_argument("anime_id")
    batch.add_argument("episodes", type=int, nargs="+", metavar="EPISODE")
    batch.add_argument("--save", action="store_true", help="Store successful episodes")
    batch.set_defaults(handler=scrape.batch)

    save = subparsers.add_parser("save", help="Scrape one episode and store it")
    save.add_argument("title")
    save.add_argument("anime_id")
    save.add_argument("--episode", "-e", type=int, default=1)
    save.set_defaults(handler=scrape.save)

    job = subparsers.add_parser("job", help="Chunked bulk jobs")
    job_commands = job.add_subparsers(dest="job_command", required=True)

    job_start = job_commands.add_parser("start", help="Create or overwrite a bulk job")
    job_start.add_argument("anime_id")
    job_start.add_argument("title")
    job_start.add_argument("total_episodes", type=int)
    job_start.add_argument("--chunk-size", type=int)
    job_start.set_defaults(handler=jobs.start)

    job_chunk = job_commands.add_parser("chunk", help="Scrape one chunk of a job")
    job_chunk.add_argument("job_id")
    job_chunk.add_argument("chunk", type=int)
    job_chunk.set_defaults(handler=jobs.chunk)

    job_progress = job_commands.add_parser("progress", help="Show job progress and ETA")
    job_progress.add_argument("job_id")
    job_progress.set_defaults(handler=jobs.progress)

    stats = subparsers.add_parser("stats", help="Show admission limits and extractors")
    stats.set_defaults(handler=scrape.stats)

    return parser


def cli(argv: list[str] | None = None) -> int:
    """Entry point for CLI."""
    args = build_parser().parse_args(argv)
    if args.debug:
        configure_logging(debug=True, force=True)
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(cli())
