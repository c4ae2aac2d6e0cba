"""Reusable console output: themed console, loading(), print_model()

- loading() - Rich spinner shown while a scrape runs
- print_model() - Pretty JSON for result models
"""

from contextlib import contextmanager

from pydantic import BaseModel
from rich.console import Console
from rich.live import Live
from rich.spinner import Spinner
from rich.theme import Theme

# Catppuccin Mocha Theme
CATPPUCCIN_MOCHA = Theme(
    {
        "info": "#89dceb",  # Sky blue for info
        "success": "#a6e3a1",  # Green for success
        "warning": "#f9e2af",  # Yellow for warnings
        "error": "#f38ba8",  # Red for errors
    }
)

# Global console with theme
console = Console(theme=CATPPUCCIN_MOCHA)
err_console = Console(theme=CATPPUCCIN_MOCHA, stderr=True)


@contextmanager
def loading(msg: str = "Scraping..."):
    """Context manager for displaying a spinner during long operations.

    Usage:
        with loading("Scraping episode 3..."):
            result = asyncio.run(engine.scrape_episode(title, 3))
    """
    with Live(
        Spinner("dots", text=msg),
        console=err_console,
        refresh_per_second=12.5,
        transient=True,  # Spinner disappears after completion
    ):
        yield


def print_model(model: BaseModel) -> None:
    console.print_json(model.model_dump_json())


def print_error(msg: str) -> None:
    err_console.print(f"[error]{msg}[/error]")
