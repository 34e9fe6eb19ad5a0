# app/utils/decorators.py
from functools import wraps

from app.models.order_model import ActionResult
from app.utils.errors import AutoSellError
from app.utils.logger import logger


def job_runner(job_name: str, quiet: bool = False):
    """
    A decorator for APScheduler jobs to handle logging and error catching.

    Scheduled jobs never raise back into the scheduler; failures are logged.
    `quiet` skips the start/finish lines for high-frequency jobs.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            label = f"{job_name} {list(args)}" if args else job_name
            if not quiet:
                logger.info(f"Starting scheduled job: '{label}'...")
            try:
                result = await func(*args, **kwargs)
                if not quiet:
                    logger.info(f"Successfully completed scheduled job: '{label}'.")
                return result
            except Exception as e:
                logger.error(
                    f"Error executing scheduled job '{label}': {e}", exc_info=True
                )

        return wrapper

    return decorator


def returns_result(func):
    """
    Convert agent errors raised by a public operation into a failed ActionResult.

    Unexpected exceptions are logged and reported as a generic failure so that
    callers (HTTP handlers, the scan loop) never see a raw exception.
    """

    @wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except AutoSellError as e:
            logger.warning(f"{func.__name__} rejected: {e.message}")
            return ActionResult(success=False, message=e.message, error=e.code)
        except Exception as e:
            logger.error(f"Error in {func.__name__}: {e}", exc_info=True)
            return ActionResult(success=False, message=str(e))

    return wrapper
