"""Services layer - the scrape orchestration engine.

This package contains:
- admission: Circuit breaker and bounded FIFO admission controller
- browser_session: Shared headless browser and per-request contexts
- search / extraction / protection: The three pipeline stages
- pipeline: Retrying per-episode scrape
- row_store: Storage for bulk jobs and scraped episodes
- bulk_jobs: Chunked bulk job orchestration
- engine: Facade wiring everything from settings
"""
