import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.staticfiles import StaticFiles
from pymongo.errors import PyMongoError

import database
from auth_routes import router as auth_router
from dashboard_routes import router as dashboard_router
from errors import register_error_handlers
from order_routes import router as order_router
from product_routes import router as product_router
from seed import seed_database
from settings import settings
from website_routes import router as website_router

logging.basicConfig(level=settings.log_level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if database.db is None:
        logger.warning("DATABASE_URL/DATABASE_NAME not set; running without a database")
    else:
        try:
            database.ensure_indexes()
            if settings.seed_on_startup:
                seed_database()
        except PyMongoError as e:
            logger.warning("Database initialisation failed: %s", e)
    yield


app = FastAPI(title="Havre Bakery API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(GZipMiddleware, minimum_size=1000)

register_error_handlers(app)

app.include_router(auth_router)
app.include_router(product_router)
app.include_router(order_router)
app.include_router(dashboard_router)
app.include_router(website_router)

app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")


# ===================== Public Endpoints =====================
@app.get("/")
def root():
    return {
        "message": "Welcome to Havre Bakery API",
        "version": app.version,
        "endpoints": {
            "auth": "/api/auth",
            "products": "/api/getProducts",
            "orders": "/api/orders",
            "dashboard": "/api/dashboard",
            "website": "/website",
            "health": "/health",
        },
    }


@app.get("/health")
def health():
    return {"status": "OK", "timestamp": database.utcnow().isoformat() + "Z"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
        "database_name": "✅ Set" if settings.database_name else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        if database.db is not None:
            response["database"] = "✅ Available"
            response["connection_status"] = "Connected"
            response["collections"] = database.db.list_collection_names()
    except PyMongoError as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
