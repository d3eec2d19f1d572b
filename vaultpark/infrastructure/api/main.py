from contextlib import asynccontextmanager

from fastapi import FastAPI

from vaultpark.config.settings_env import settings
from vaultpark.infrastructure.api.routers.parking import router
from vaultpark.infrastructure.persistence.database import init_db
from vaultpark.shared.utils import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info(f"VaultPark API ready (capacity policy: {settings.CAPACITY_POLICY})")
    yield


def create_app() -> FastAPI:
    app = FastAPI(title="VaultPark", lifespan=lifespan)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.FASTAPI_HOST, port=settings.FASTAPI_PORT)
