#!/usr/bin/env python3
"""
Celery worker for the order payments service.
Processes queued order confirmation emails.
"""

from dotenv import load_dotenv

load_dotenv()

if __name__ == "__main__":
    from core.celery import celery_app
    from core.logging_config import setup_logging

    setup_logging()
    celery_app.start([
        "worker",
        "--loglevel=info",
        "--concurrency=2",
        "--without-gossip",
        "--without-mingle",
        "--without-heartbeat",
    ])
