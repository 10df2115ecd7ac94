"""
Background scheduler for periodic tasks.

This module manages background jobs that run on a schedule:
- Refresh detected OpenAI model: runs at startup, then every
  MODEL_DETECTION_INTERVAL_HOURS hours
"""

from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from mentorhub.core.config import settings
from mentorhub.services.llm_service import llm_service
import logging

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def refresh_model_job():
    """
    Re-check which OpenAI model the API key can use.

    Keeps the model cache warm so chat requests don't pay for detection.
    """
    try:
        model = llm_service.detect_model()
        logger.info(f"Model detection job completed: using {model}")
    except Exception as e:
        # Next run retries; requests fall back to on-demand detection meanwhile
        logger.error(f"Error in refresh_model_job: {str(e)}")


def should_run_scheduler() -> bool:
    # Function instances die after the request; a scheduler there never fires
    if settings.is_serverless():
        return False
    if settings.OPENAI_MODEL:
        return False
    return llm_service.is_configured()


def start_scheduler():
    """
    Start the background scheduler.

    Called from the FastAPI lifespan. The first detection runs immediately
    in the scheduler thread so startup isn't blocked on the OpenAI API.
    """
    if not should_run_scheduler():
        logger.info("Model detection scheduler not started")
        return

    if not scheduler.running:
        scheduler.add_job(
            refresh_model_job,
            trigger=IntervalTrigger(hours=settings.MODEL_DETECTION_INTERVAL_HOURS),
            id="refresh_model",
            name="Refresh detected OpenAI model",
            replace_existing=True,
            next_run_time=datetime.now(),
        )

        scheduler.start()
        logger.info(
            "Background scheduler started. Model detection scheduled every "
            f"{settings.MODEL_DETECTION_INTERVAL_HOURS} hours."
        )


def stop_scheduler():
    """
    Stop the background scheduler.

    This should be called when the FastAPI app shuts down.
    """
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped.")
