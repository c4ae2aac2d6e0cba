"""Bulk job command handlers.

Jobs live in the on-disk row store, so ``job start``, ``job chunk`` and
``job progress`` can run as separate invocations (e.g. from cron).
"""

from commands.runtime import emit, run_engine
from ui.components import console, print_error


def start(args) -> int:
    async def _start(engine):
        started = await engine.start_large_scrape(
            args.anime_id, args.title, args.total_episodes, args.chunk_size
        )
        if not started.success:
            return started
        return await engine.get_progress(started.job_id)

    report = run_engine(_start, f"Starting job for '{args.title}'...")
    if not report.success:
        print_error(report.error)
        return 2
    console.print(f"[success]Started job {report.progress.job_id}[/success]")
    return emit(report)


def chunk(args) -> int:
    result = run_engine(
        lambda engine: engine.scrape_chunk(args.job_id, args.chunk),
        f"Scraping chunk {args.chunk} of {args.job_id}...",
    )
    return emit(result)


def progress(args) -> int:
    return emit(run_engine(lambda engine: engine.get_progress(args.job_id), "Loading progress..."))
