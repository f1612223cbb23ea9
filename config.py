import os

# -------------------------------------------------------------------
# Auth
# -------------------------------------------------------------------
JWT_SECRET = os.getenv("JWT_SECRET", "supersecret-blog-dev-key")
JWT_ALGORITHM = "HS256"
JWT_EXPIRES_DAYS = int(os.getenv("JWT_EXPIRES_DAYS", "30"))
PASSWORD_ALGO = os.getenv("PASSWORD_ALGO", "argon2")

# -------------------------------------------------------------------
# Database
# -------------------------------------------------------------------
DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "blog")
DB_TIMEOUT_MS = int(os.getenv("DB_TIMEOUT_MS", "5000"))

# -------------------------------------------------------------------
# Runtime
# -------------------------------------------------------------------
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
PORT = int(os.getenv("PORT", "8000"))


def is_production() -> bool:
    return ENVIRONMENT.lower() == "production"
