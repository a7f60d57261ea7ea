import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi import _rate_limit_exceeded_handler
import sentry_sdk

from prepkit.api.v1.health import router as health_router
from prepkit.api.v1.auth import router as auth_router
from prepkit.api.v1.preparations import router as preparations_router
from prepkit.api.v1.histories import router as histories_router
from prepkit.api.v1.question_answers import router as question_answers_router
from prepkit.api.v1.resumes import router as resumes_router
from prepkit.api.v1.settings import router as settings_router
from prepkit.api.v1.analytics import router as analytics_router
from prepkit.core.rate_limit import limiter
from prepkit.core.config import settings
from prepkit.core.lifespan import lifespan

logging.basicConfig(level=settings.log_level, format="%(levelname)s %(name)s %(message)s")
logger = logging.getLogger(__name__)

if settings.sentry_dsn:
    sentry_sdk.init(dsn=settings.sentry_dsn)

app = FastAPI(title="PrepKit API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.cors_allowed_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled_exception path=%s", request.url.path)
    return JSONResponse(status_code=500, content={"detail": "サーバーエラーが発生しました"})


app.include_router(health_router, prefix="/v1", tags=["Health"])
app.include_router(auth_router, prefix="/v1", tags=["Auth"])
app.include_router(preparations_router, prefix="/v1", tags=["Preparations"])
app.include_router(histories_router, prefix="/v1", tags=["Histories"])
app.include_router(question_answers_router, prefix="/v1", tags=["Question Answers"])
app.include_router(resumes_router, prefix="/v1", tags=["Resumes"])
app.include_router(settings_router, prefix="/v1", tags=["Settings"])
app.include_router(analytics_router, prefix="/v1", tags=["Analytics"])
