"""
Base worker class for queue-driven pipeline workers

- Redis queue consumption (BRPOP)
- Signal handling (graceful shutdown)
- Processed/failed counters
"""
import asyncio
import signal
import logging
from services.job_queue import JobQueue

logger = logging.getLogger(__name__)


class BaseWorker:
    """
    Base class for pipeline workers

    Subclasses implement process(job); a job that raises is counted as
    failed and handed to handle_error(), the loop keeps going.
    """

    def __init__(
        self,
        job_queue: JobQueue,
        worker_name: str,
        queue_name: str,
        dequeue_timeout: int = 5
    ):
        self.job_queue = job_queue
        self.worker_name = worker_name
        self.queue_name = queue_name
        self.dequeue_timeout = dequeue_timeout
        self.running = False
        self.jobs_processed = 0
        self.jobs_failed = 0

    async def start(self):
        """
        Main worker loop

        Continuously:
        1. BRPOP from queue (blocks until job available)
        2. process(job)
        3. count success or failure
        """
        self._setup_signal_handlers()

        self.running = True
        logger.info(f"[{self.worker_name}] Started, listening on {self.queue_name}")

        while self.running:
            try:
                job = await self.job_queue.dequeue(self.queue_name, timeout=self.dequeue_timeout)

                if job:
                    await self.run_job(job)

            except asyncio.CancelledError:
                logger.info(f"[{self.worker_name}] Received cancellation signal")
                break
            except Exception as e:
                logger.error(f"[{self.worker_name}] Worker loop error: {e}", exc_info=True)
                await asyncio.sleep(1)

        logger.info(
            f"[{self.worker_name}] Shutting down. "
            f"Processed: {self.jobs_processed}, Failed: {self.jobs_failed}"
        )

    async def run_job(self, job: dict) -> bool:
        """Process one job, returning whether it succeeded"""
        logger.debug(f"[{self.worker_name}] Received job: {str(job)[:200]}")
        try:
            await self.process(job)
            self.jobs_processed += 1
            return True
        except Exception as e:
            self.jobs_failed += 1
            logger.error(f"[{self.worker_name}] Job failed: {e}", exc_info=True)
            await self.handle_error(job, e)
            return False

    def stop(self):
        self.running = False

    def _setup_signal_handlers(self):
        """Setup graceful shutdown on SIGTERM/SIGINT"""
        def shutdown_handler(signum, frame):
            logger.info(f"[{self.worker_name}] Received signal {signum}, shutting down...")
            self.running = False

        signal.signal(signal.SIGTERM, shutdown_handler)
        signal.signal(signal.SIGINT, shutdown_handler)

    async def process(self, job: dict):
        """Override in subclass - do the actual work"""
        raise NotImplementedError(f"{self.__class__.__name__} must implement process()")

    async def handle_error(self, job: dict, error: Exception):
        """
        Handle job processing error

        Default: log. Override for dead-lettering or retries.
        """
        logger.error(
            f"[{self.worker_name}] Error processing job {str(job)[:200]}: {error}"
        )
