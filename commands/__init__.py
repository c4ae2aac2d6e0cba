"""Command handlers for the ani-harvest CLI.

Each module handles one group of subcommands:
- scrape.py: episode, all, batch, save, stats
- jobs.py: bulk job start, chunk and progress
- runtime.py: engine lifetime and result output shared by handlers
"""

from commands import jobs, scrape

__all__ = ["jobs", "scrape"]
