"""Scrape command handlers.

This module handles:
- episode: one episode through the full pipeline
- all: every listed episode of a title
- batch: an explicit list of episode numbers
- save: scrape one episode and store it
- stats: admission controller limits and available extractors
"""

from commands.runtime import emit, run_engine
from models.config import settings
from scrapers.loader import available_extractors, load_plugins
from ui.components import console, print_model


def episode(args) -> int:
    result = run_engine(
        lambda engine: engine.scrape_episode(
            args.title, args.episode, timeout=args.timeout, retries=args.retries
        ),
        f"Scraping '{args.title}' episode {args.episode}...",
    )
    return emit(result)


def all_episodes(args) -> int:
    result = run_engine(
        lambda engine: engine.scrape_all_episodes(
            args.title, max_episodes=args.max_episodes, timeout=args.timeout, retries=args.retries
        ),
        f"Scraping all episodes of '{args.title}'...",
    )
    return emit(result)


def batch(args) -> int:
    result = run_engine(
        lambda engine: engine.batch_scrape_episodes(
            args.title, args.anime_id, args.episodes, save=args.save
        ),
        f"Scraping {len(args.episodes)} episodes of '{args.title}'...",
    )
    return emit(result)


def save(args) -> int:
    result = run_engine(
        lambda engine: engine.scrape_and_save_episode(args.title, args.anime_id, args.episode),
        f"Scraping and saving '{args.title}' episode {args.episode}...",
    )
    return emit(result)


def stats(args) -> int:
    async def _stats(engine):
        return engine.stats()

    print_model(run_engine(_stats, "Starting engine..."))
    load_plugins()
    console.print(f"[info]Extractors:[/info] {', '.join(available_extractors()) or 'none'}")
    console.print(f"[info]Active extractor:[/info] {settings.scraper.extractor}")
    return 0
