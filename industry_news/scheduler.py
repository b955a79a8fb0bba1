import asyncio
import logging
import threading
from datetime import datetime
from typing import Dict, Any, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .collector import CollectionPipeline, CollectionResult, build_pipeline, sync_from_config
from .storage.database import DatabaseManager
from .utils.config import Config

SCHEDULE_ENABLED_KEY = 'schedule_enabled'
LAST_RUN_KEY = 'last_collection_run'


class NewsScheduler:
    def __init__(self, config: Config, db_manager: Optional[DatabaseManager] = None,
                 pipeline: Optional[CollectionPipeline] = None):
        self.config = config
        self.scheduler = AsyncIOScheduler()
        self.logger = logging.getLogger('scheduler')

        if db_manager is None:
            db_config = config.get_database_config()
            db_manager = DatabaseManager(db_config.get('path', 'data/industry-news.db'))
        self.db_manager = db_manager

        sync_from_config(self.db_manager, config)
        self.pipeline = pipeline or build_pipeline(config, self.db_manager)
        self.stop_event = threading.Event()

        self._setup_jobs()

    def _setup_jobs(self):
        scheduling_config = self.config.get_scheduling_config()
        collect_interval = scheduling_config.get('collect_interval_hours', 4)

        self.scheduler.add_job(
            self.collect_all_sources,
            IntervalTrigger(hours=collect_interval),
            id='collect_news',
            name='Collect news from all sources',
            replace_existing=True,
            max_instances=1,
            coalesce=True
        )

        self.logger.info(f"Scheduled collection every {collect_interval} hours")

    def is_enabled(self) -> bool:
        enabled = self.db_manager.get_setting(SCHEDULE_ENABLED_KEY, True)
        # Older rows store the flag as the string 'false'
        return enabled not in (False, 'false')

    async def collect_all_sources(self) -> Optional[CollectionResult]:
        if not self.is_enabled():
            self.logger.info("Scheduled collection is disabled, skipping")
            return None

        self.logger.info("Starting scheduled collection of all sources")
        start_time = datetime.now()

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            None, lambda: self.pipeline.run_collection(stop_event=self.stop_event))

        self.db_manager.set_setting(LAST_RUN_KEY, datetime.now().isoformat())

        duration = datetime.now() - start_time
        self.logger.info(
            f"Collection completed in {duration.total_seconds():.1f}s. "
            f"Sources: {result.sources_succeeded}/{result.sources_attempted}, "
            f"New articles: {result.articles_inserted}"
        )
        return result

    def start(self):
        self.logger.info("Starting news scheduler")
        self.stop_event.clear()
        self.scheduler.start()

    def shutdown(self):
        self.logger.info("Shutting down news scheduler")
        self.stop_event.set()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)

    def get_job_status(self) -> Dict[str, Any]:
        jobs = []
        for job in self.scheduler.get_jobs():
            # Jobs added before start() have no next_run_time yet
            next_run = getattr(job, 'next_run_time', None)
            jobs.append({
                'id': job.id,
                'name': job.name,
                'next_run': next_run.isoformat() if next_run else None,
                'trigger': str(job.trigger)
            })

        return {
            'running': self.scheduler.running,
            'enabled': self.is_enabled(),
            'last_run': self.db_manager.get_setting(LAST_RUN_KEY),
            'jobs': jobs,
            'status_time': datetime.now().isoformat()
        }
