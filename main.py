import logging
import os
import uuid
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import config
from auth_routes import router as auth_router
from chat_routes import router as chat_router
from customization_routes import router as customization_router
from database import db, ensure_indexes, get_db
from order_routes import router as order_router
from policies import InvalidTransition
from product_routes import router as product_router
from security import require_admin
from uploads import UploadRejected
from user_routes import router as user_router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    try:
        ensure_indexes(db)
    except PyMongoError:
        logger.exception("MongoDB connection error")
        raise
    logger.info("Connected to MongoDB database %s", config.DATABASE_NAME)
    yield


app = FastAPI(title="Karigari API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_error(_: Request, exc: RequestValidationError):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(InvalidTransition)
async def invalid_transition(_: Request, exc: InvalidTransition):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(UploadRejected)
async def upload_rejected(_: Request, exc: UploadRejected):
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"detail": "Internal server error"})


app.include_router(auth_router)
app.include_router(user_router)
app.include_router(product_router)
app.include_router(order_router)
app.include_router(customization_router)
app.include_router(chat_router)

app.mount("/uploads", StaticFiles(directory=config.UPLOAD_DIR, check_dir=False), name="uploads")


@app.get("/test")
def test_database(database: Database = Depends(get_db)):
    info = {"backend": "running", "database": "disconnected"}
    try:
        info["collections"] = database.list_collection_names()
        info["database"] = "connected"
    except PyMongoError as e:
        info["error"] = str(e)
    return info


@app.get("/api/health")
def health():
    return {"status": "ok"}


@app.get("/api/admin/stats")
async def admin_stats(_: dict = Depends(require_admin), database: Database = Depends(get_db)):
    return {
        "users": database["user"].count_documents({}),
        "customers": database["user"].count_documents({"role": "customer"}),
        "artisans": database["user"].count_documents({"role": "artisan"}),
        "pending_artisans": database["user"].count_documents(
            {"role": {"$in": ["artisan", "artisan-pending"]}, "status": "pending"}
        ),
        "products": database["product"].count_documents({}),
        "published_products": database["product"].count_documents({"status": "published"}),
        "orders": database["order"].count_documents({}),
        "customizations": database["customization"].count_documents({}),
    }


@app.websocket("/ws")
async def realtime(websocket: WebSocket):
    # Connection bookkeeping only.
    await websocket.accept()
    client_id = uuid.uuid4().hex
    logger.info("New client connected: %s", client_id)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Client disconnected: %s", client_id)


class SPAStaticFiles(StaticFiles):
    """Serve the built frontend, falling back to index.html for client-side routes."""

    async def get_response(self, path, scope):
        try:
            return await super().get_response(path, scope)
        except StarletteHTTPException as exc:
            if exc.status_code != 404:
                raise
            return await super().get_response("index.html", scope)


if os.path.isdir(config.FRONTEND_DIST):
    app.mount("/", SPAStaticFiles(directory=config.FRONTEND_DIST, html=True), name="frontend")
else:
    @app.get("/")
    def read_root():
        return {"name": "Karigari API", "status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
