import os
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pythonjsonlogger import jsonlogger
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import core
from .core import init_metrics, mongo_startup, redis_startup, shutdown_connections
from .exceptions import SocialAppError
from .routes import router, auth_router
from .store import UserStore

# setup structured logging
logger = logging.getLogger('socialapp')
handler = logging.StreamHandler()
formatter = jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s')
handler.setFormatter(formatter)
logger.addHandler(handler)
logger.setLevel(os.getenv('LOG_LEVEL', 'INFO').upper())

app = FastAPI(title="SocialApp API", version="0.3.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=['*'],
    allow_credentials=True,
    allow_methods=['GET', 'POST', 'PUT', 'PATCH', 'DELETE'],
    allow_headers=['*'],
)

app.include_router(router, prefix="/api")
app.include_router(auth_router, prefix="/auth", tags=['auth'])


@app.get('/healthz')
async def healthz():
    return {'status': 'ok'}


@app.middleware('http')
async def log_requests(request: Request, call_next):
    logger.info({'msg': 'request_start', 'method': request.method, 'path': request.url.path})
    response = await call_next(request)
    logger.info({'msg': 'request_end', 'status': response.status_code})
    return response


@app.exception_handler(SocialAppError)
async def social_app_error_handler(request: Request, exc: SocialAppError):
    log = logger.error if exc.status_code >= 500 else logger.info
    log({'msg': 'request_failed', 'path': request.url.path, 'error': exc.message,
         'kind': type(exc).__name__, **exc.context})
    return JSONResponse(status_code=exc.status_code, content={'error': exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {'field': '.'.join(str(p) for p in err['loc'] if p != 'body'), 'message': err['msg']}
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content={'error': 'Invalid request', 'errors': errors})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={'error': exc.detail},
                        headers=getattr(exc, 'headers', None))


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception({'msg': 'unhandled_error', 'path': request.url.path, 'error': str(exc)})
    return JSONResponse(status_code=500, content={'error': 'An error has occurred'})


@app.on_event("startup")
async def startup():
    # Best-effort init, don't block app from starting if a dependency fails
    try:
        await redis_startup()
    except Exception as e:
        logger.warning({'msg': 'redis_start_failed', 'error': str(e)})
    try:
        await mongo_startup()
        if core.MONGO is not None:
            await UserStore(core.get_database()).ensure_indexes()
    except Exception as e:
        logger.warning({'msg': 'mongo_init_failed', 'error': str(e)})
    try:
        init_metrics()
    except Exception as e:
        logger.warning({'msg': 'metrics_init_failed', 'error': str(e)})


@app.on_event("shutdown")
async def shutdown():
    await shutdown_connections()
