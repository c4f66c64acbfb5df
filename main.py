"""
票务服务 HTTP 入口

uvicorn main:app
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import RedisError

from api.middleware import LoggingMiddleware, RequestIDMiddleware
from api.middleware.locale import LocaleMiddleware
from api.routes import payments, refunds, tickets, wallet
from core.config import settings
from core.exceptions import register_exception_handlers
from core.logging_config import get_logger
from core.response import success_response
from infrastructure.cache.redis_cache import init_redis_cache, shutdown_redis_cache
from infrastructure.database import create_tables


logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 生产环境走 alembic upgrade head
    if settings.DEBUG:
        await create_tables()
        logger.info("database_tables_created")

    redis_ready = False
    if settings.redis.url:
        try:
            await init_redis_cache()
            redis_ready = True
        except (RedisError, OSError) as exc:
            # 购票依赖 Redis；启动不阻塞，请求时返回 503
            logger.error("redis_cache_init_failed", error=str(exc))
    else:
        logger.warning("redis_not_configured")
    logger.info("application_started", version=settings.VERSION, redis=redis_ready)

    yield

    if redis_ready:
        await shutdown_redis_cache()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="活动票务：购票、支付核实、入场核验与退款",
)

# 后添加的先执行：CORS -> Locale -> Logging -> RequestID
app.add_middleware(RequestIDMiddleware)
app.add_middleware(LoggingMiddleware)
app.add_middleware(LocaleMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

for module in (tickets, payments, refunds, wallet):
    app.include_router(module.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root():
    return success_response(
        data={"name": settings.PROJECT_NAME, "version": settings.VERSION, "docs": "/docs"},
        message=f"Welcome to {settings.PROJECT_NAME}",
    )


@app.get("/health", tags=["Health"])
async def health_check():
    return success_response(data={"status": "healthy"}, message="OK")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
