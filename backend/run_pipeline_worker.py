"""
Run Pipeline Worker

Launches the worker that dedups, enriches and persists raw city event batches
"""
import asyncio
from workers.pipeline_worker import main

if __name__ == '__main__':
    asyncio.run(main())
