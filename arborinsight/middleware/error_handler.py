"""
Global error handling middleware.
"""
import logging
from typing import Callable

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from arborinsight.domain.exceptions import (
    ArborInsightError,
    ConfigurationError,
    NotFoundError,
    PersistenceError,
    UpstreamError,
    ValidationError,
)


logger = logging.getLogger(__name__)

ERROR_TITLES = {
    ValidationError: "Validation failed",
    NotFoundError: "Not found",
    UpstreamError: "Upstream service error",
    ConfigurationError: "Configuration error",
    PersistenceError: "Database error",
}


def error_response(error: ArborInsightError) -> JSONResponse:
    """Translate an application error into its JSON response."""
    content = {
        "error": ERROR_TITLES.get(type(error), "Application error"),
        "detail": error.detail,
    }
    if isinstance(error, ValidationError):
        content["errors"] = error.errors
    return JSONResponse(status_code=error.status_code, content=content)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Global error handling middleware.

    Catches application errors raised anywhere below the router and returns
    consistent ``{error, detail}`` responses.
    """

    async def dispatch(self, request: Request, call_next: Callable):
        """
        Process the request and handle any exceptions.

        Args:
            request: The incoming request
            call_next: The next middleware or route handler

        Returns:
            Response object
        """
        context = {"path": request.url.path, "method": request.method}
        try:
            response = await call_next(request)
            return response

        except (ValidationError, NotFoundError) as e:
            logger.warning(f"{type(e).__name__}: {e.message}", extra=context)
            return error_response(e)

        except UpstreamError as e:
            # Pass through the provider status code when there is one
            logger.error(
                f"Upstream error: {e.message}",
                extra={**context, "status_code": e.status_code},
            )
            return error_response(e)

        except (ConfigurationError, PersistenceError) as e:
            logger.error(f"{type(e).__name__}: {e.message}", extra=context)
            return error_response(e)

        except Exception as e:
            # Log unexpected errors
            logger.exception(f"Unhandled exception: {str(e)}", extra=context)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={
                    "error": "Internal server error",
                    "detail": "An unexpected error occurred",
                }
            )
