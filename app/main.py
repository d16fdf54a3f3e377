from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from app.cabinet.routes import admin_vip, vip
from app.config import settings
from app.core.rate_limit import limiter, rate_limit_exceeded_handler
from app.database.database import engine
from app.logging_config import setup_logging
from app.services.vip_notification_service import drain_vip_notifications


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(debug=settings.DEBUG, level=settings.LOG_LEVEL)
    logger.info('PattaMap VIP API starting')
    yield
    await drain_vip_notifications()
    await engine.dispose()
    logger.info('PattaMap VIP API stopped')


app = FastAPI(
    title='PattaMap VIP API',
    lifespan=lifespan,
    docs_url='/api/docs' if settings.DEBUG else None,
    redoc_url='/api/redoc' if settings.DEBUG else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


def _format_validation_error(error: dict) -> str:
    field = '.'.join(str(part) for part in error.get('loc', ()) if part != 'body')
    return f'{field}: {error.get("msg", "invalid value")}' if field else error.get('msg', 'invalid value')


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    messages = [_format_validation_error(error) for error in exc.errors()]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={'detail': '; '.join(messages) or 'Invalid request'},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(vip.router, prefix='/api')
app.include_router(admin_vip.router, prefix='/api')


@app.get('/health')
async def health():
    return {'status': 'ok'}
