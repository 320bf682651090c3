#!/usr/bin/env python3
"""
Run the mineral LCA service under uvicorn.

Worker count and reload come from MineralLCASettings and ENVIRONMENT.
"""

import os
import uvicorn
import multiprocessing

from services.mineral_lca.config import settings


def main():
    """Main entry point for the mineral LCA service"""
    # Calculate workers based on CPU count in production
    workers = settings.api_workers
    if workers > 1:
        workers = min(workers, multiprocessing.cpu_count())

    # Use reload only in development (single worker)
    reload = workers == 1 and os.getenv("ENVIRONMENT", "development") == "development"

    # String reference so each worker imports the app itself
    uvicorn.run(
        "services.mineral_lca.app:app",
        host=settings.api_host,
        port=settings.api_port,
        workers=workers,
        log_level=settings.log_level.lower(),
        access_log=True,
        reload=reload
    )


if __name__ == "__main__":
    main()
