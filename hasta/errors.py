import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# =====================================================
# ERROR TAXONOMY
# =====================================================

class ShopError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class InputRejected(ShopError):
    """User input failed a validation rule; nothing was written."""
    status_code = status.HTTP_400_BAD_REQUEST


class PreconditionFailed(ShopError):
    """The action is not permitted in the document's current state."""
    status_code = status.HTTP_409_CONFLICT


class NotFound(ShopError):
    status_code = status.HTTP_404_NOT_FOUND


class NotAuthenticated(ShopError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(ShopError):
    status_code = status.HTTP_403_FORBIDDEN


# =====================================================
# HANDLERS
# =====================================================

def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ShopError)
    async def _shop_error(request: Request, exc: ShopError):
        logger.info(
            "Request rejected | path=%s | error=%s | detail=%s",
            request.url.path,
            type(exc).__name__,
            exc.detail,
        )
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
