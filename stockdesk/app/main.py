import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stockdesk.app.api.v1.router import router as v1_router
from stockdesk.app.config import settings
from stockdesk.services.errors import DuplicateSku, InvalidInput, NotFound, StockError, TransactionFailure

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# most specific first
ERROR_STATUS = (
    (NotFound, 404),
    (DuplicateSku, 409),
    (InvalidInput, 400),
    (TransactionFailure, 503),
)


def status_for(exc: StockError) -> int:
    for error_cls, status_code in ERROR_STATUS:
        if isinstance(exc, error_cls):
            return status_code
    return 500


app = FastAPI(title=settings.APP_NAME, version=settings.APP_VERSION)
app.include_router(v1_router, prefix="/v1")


@app.exception_handler(StockError)
async def stock_error_handler(request: Request, exc: StockError):
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_code, content=exc.as_dict())
