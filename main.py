#!/usr/bin/env python3
import argparse
import json
import logging
import signal
import sys
import uvicorn
from contextlib import asynccontextmanager

from industry_news.collector import build_pipeline, sync_from_config
from industry_news.scheduler import NewsScheduler
from industry_news.storage.database import DatabaseManager
from industry_news.utils.config import get_config
from industry_news.web.app import app, get_db

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)

scheduler = None


@asynccontextmanager
async def lifespan(app):
    global scheduler
    try:
        config = get_config()
        scheduler = NewsScheduler(config, db_manager=get_db())
        scheduler.start()
        logger.info("Industry news collector started successfully")
        yield
    except Exception as e:
        logger.error(f"Error starting application: {e}")
        raise
    finally:
        if scheduler:
            scheduler.shutdown()
        logger.info("Industry news collector shut down")

app.router.lifespan_context = lifespan


def signal_handler(signum, frame):
    logger.info(f"Received signal {signum}, shutting down...")
    if scheduler:
        scheduler.shutdown()
    sys.exit(0)


def run_once(source_ids=None):
    config = get_config()
    db_config = config.get_database_config()
    db = DatabaseManager(db_config.get('path', 'data/industry-news.db'))
    sync_from_config(db, config)

    result = build_pipeline(config, db).run_collection(source_ids=source_ids)
    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    return 0 if result.sources_succeeded == result.sources_attempted else 1


def serve():
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        config = get_config()
        web_config = config.get_web_config()

        host = web_config.get('host', '127.0.0.1')
        port = web_config.get('port', 8000)
        reload = web_config.get('reload', False)

        logger.info(f"Starting industry news collector on {host}:{port}")

        uvicorn.run(
            "main:app",
            host=host,
            port=port,
            reload=reload,
            log_level="info"
        )

    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, shutting down...")
    except Exception as e:
        logger.error(f"Error running application: {e}")
        sys.exit(1)


def main():
    parser = argparse.ArgumentParser(description='Industry news collector')
    subparsers = parser.add_subparsers(dest='command')
    subparsers.add_parser('serve', help='Run the API server with the collection scheduler (default)')
    collect_parser = subparsers.add_parser('collect', help='Run one collection pass and exit')
    collect_parser.add_argument('--source', type=int, action='append', dest='source_ids',
                                help='Only collect this source id (repeatable)')

    args = parser.parse_args()
    if args.command == 'collect':
        sys.exit(run_once(args.source_ids))
    serve()


if __name__ == "__main__":
    main()
