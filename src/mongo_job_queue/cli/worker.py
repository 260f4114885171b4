#!/usr/bin/env python3
"""
Command-line interface for running job queue workers.
"""

import argparse
import asyncio
import logging
import sys

from mongo_job_queue.config import Config
from mongo_job_queue.queue.worker import QueueWorker, load_handler


def configure_logging(level: str, log_format: str, log_file=None) -> None:
    """Configure root logging for a CLI process."""
    log_level = getattr(logging, level.upper())

    if log_file:
        logging.basicConfig(
            level=log_level,
            format=log_format,
            filename=log_file,
            filemode='a'
        )
    else:
        logging.basicConfig(
            level=log_level,
            format=log_format
        )


def main(argv=None):
    """Main entry point for the job worker."""
    parser = argparse.ArgumentParser(
        description="MongoDB Job Queue Worker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run a worker with the handler named in config.yaml
  python -m mongo_job_queue.cli.worker

  # Run a worker with an explicit handler and config file
  python -m mongo_job_queue.cli.worker --config /path/to/config.yaml --handler myapp.jobs:process

  # Run four schedulers in the same process
  python -m mongo_job_queue.cli.worker --workers 4

Environment Variables:
  MONGO_JOB_QUEUE_CONFIG_PATH: Path to configuration file (default: ./config.yaml)
  MONGO_JOB_QUEUE_URI: MongoDB connection string (overrides storage settings)
        """
    )

    parser.add_argument(
        "--config", "-c",
        help="Path to configuration file (overrides MONGO_JOB_QUEUE_CONFIG_PATH)"
    )

    parser.add_argument(
        "--handler",
        help="Job handler as package.module:function (overrides worker.handler)"
    )

    parser.add_argument(
        "--workers", "-w",
        type=int,
        help="Number of schedulers to run in this process (default: worker.workers or 1)"
    )

    parser.add_argument(
        "--worker-id",
        help="Custom worker ID (auto-generated if not provided)"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: logging.level or INFO)"
    )

    parser.add_argument(
        "--log-file",
        help="Log to file instead of stdout"
    )

    args = parser.parse_args(argv)

    try:
        config = Config(args.config)
    except Exception as e:
        print(f"❌ Invalid configuration: {str(e)}", file=sys.stderr)
        return 1

    logging_config = config.get_logging_config()
    configure_logging(
        args.log_level or logging_config['level'],
        logging_config['format'],
        args.log_file or logging_config['file'],
    )

    logger = logging.getLogger(__name__)

    try:
        logger.info("Starting job queue worker")
        logger.info(f"Config file: {config.config_path}")

        handler = load_handler(args.handler) if args.handler else None
        worker = QueueWorker(config, on_document=handler, workers=args.workers,
                             worker_id=args.worker_id)

        stats = asyncio.run(worker.run())

        logger.info("Job queue worker stopped")
        logger.info(f"Worker statistics:")
        logger.info(f"  Worker ID: {stats['worker_id']}")
        logger.info(f"  Schedulers: {stats['total_workers']}")
        logger.info(f"  Jobs processed: {stats['jobs_processed']}")
        logger.info(f"  Jobs failed: {stats['jobs_failed']}")
        logger.info(f"  Errors: {stats['errors']}")
        logger.info(f"  Runtime: {stats['runtime']:.1f} seconds")

        return 0

    except KeyboardInterrupt:
        logger.info("Worker shutdown requested by user")
        return 1

    except Exception as e:
        logger.error(f"Worker failed: {str(e)}")
        logger.debug("Exception details:", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
