from fastapi import HTTPException, status
import logging

from ..exceptions import InvalidOptionsError, OptimizationCancelled, UnknownStrategyError

# Logger setup
logger = logging.getLogger(__name__)

# ============================================================================
# ERROR MAPPING UTILITIES
# ============================================================================

def to_http_exception(error: Exception, action: str) -> HTTPException:
    """
    Map an optimizer error to the HTTP status the API reports.

    Args:
        error: Exception raised while handling the request
        action: Short description used in the log line (e.g. "optimizing")

    Returns:
        HTTPException: 400 unknown strategy, 422 invalid options,
        409 cancelled run, 500 anything else
    """
    if isinstance(error, UnknownStrategyError):
        logger.warning(f"⚠️ Unknown strategy while {action}: {error}")
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(error), "available": error.available},
        )
    if isinstance(error, InvalidOptionsError):
        logger.warning(f"⚠️ Invalid options while {action}: {error.detail}")
        return HTTPException(
            status_code=422,
            detail={"message": f"Invalid options for strategy {error.strategy!r}", "errors": _jsonable(error.detail)},
        )
    if isinstance(error, OptimizationCancelled):
        logger.warning(f"⚠️ Cancelled while {action}")
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))

    logger.error(f"❌ Error {action}: {error}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))


def _jsonable(detail):
    # pydantic error dicts may carry exception objects under "ctx"
    if isinstance(detail, list):
        return [
            {key: value for key, value in item.items() if key in ("type", "loc", "msg")}
            if isinstance(item, dict) else str(item)
            for item in detail
        ]
    return str(detail)
