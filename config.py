import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

SECRET_KEY = os.getenv("SECRET_KEY") or os.getenv("JWT_SECRET", "karigari-secret-key-change")
ALGORITHM = "HS256"

SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "karigari.session")
SESSION_MAX_AGE_SECONDS = int(os.getenv("SESSION_MAX_AGE_SECONDS", 24 * 60 * 60))

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
COOKIE_SECURE = ENVIRONMENT == "production"

DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("MONGODB_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "karigari")

FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
CORS_ORIGINS = list(dict.fromkeys([FRONTEND_URL, "http://localhost:5173", "http://localhost:5174"]))
FRONTEND_DIST = os.getenv("FRONTEND_DIST", os.path.join(BASE_DIR, "dist"))

UPLOAD_DIR = os.getenv("UPLOAD_DIR", os.path.join(BASE_DIR, "uploads"))
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", 5 * 1024 * 1024))
MAX_PRODUCT_IMAGES = int(os.getenv("MAX_PRODUCT_IMAGES", 6))

TAX_RATE = float(os.getenv("TAX_RATE", "0"))

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@karigari.com")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", 10000))
