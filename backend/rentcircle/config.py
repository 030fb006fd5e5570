from __future__ import annotations

import os


def _load_dotenv_if_present() -> None:
    """
    Load environment variables from a local `.env` file (dev convenience).

    Production deployments should set real environment variables instead.
    """
    from dotenv import load_dotenv

    # Do not override existing environment variables.
    load_dotenv(override=False)


# Load .env as early as possible (dev only).
_load_dotenv_if_present()


def _int_env(name: str, default: int, *, lo: int, hi: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    try:
        v = int(raw or str(default))
    except ValueError:
        v = default
    # Reasonable bounds to avoid foot-guns.
    return max(lo, min(hi, v))


def database_url() -> str:
    url = os.environ.get("DATABASE_URL") or "sqlite:///./local.db"
    # Some managed providers still supply `postgres://...` which SQLAlchemy treats as invalid.
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    return url


def jwt_secret() -> str:
    return os.environ.get("JWT_SECRET") or "dev-secret-change-me"


def access_token_ttl_minutes() -> int:
    return _int_env("ACCESS_TOKEN_TTL_MINUTES", 60 * 24, lo=5, hi=60 * 24 * 30)


def is_local_dev() -> bool:
    """
    We treat the app as "local dev" when DATABASE_URL is not set, because
    `database_url()` falls back to sqlite in that case.
    """
    return not (os.environ.get("DATABASE_URL") or "").strip()


def app_env() -> str:
    """
    Application environment marker:
    - local (default when running with sqlite fallback)
    - staging
    - prod
    """
    raw = (os.environ.get("APP_ENV") or "").strip().lower()
    if raw:
        return raw
    return "local" if is_local_dev() else "prod"


def allowed_hosts() -> list[str]:
    """
    Comma-separated list for TrustedHost middleware.
    Example: ALLOWED_HOSTS=api.rentcircle.in,rentcircle.in
    """
    raw = (os.environ.get("ALLOWED_HOSTS") or "").strip()
    if not raw:
        return ["*"]
    hosts = [h.strip() for h in raw.split(",") if h.strip()]
    return hosts or ["*"]


def enforce_secure_secrets() -> None:
    """
    Fail-fast in production if dangerous defaults are still in use.
    """
    if app_env() in {"prod", "production"}:
        if jwt_secret() == "dev-secret-change-me":
            raise RuntimeError("JWT_SECRET must be set in production (default dev secret detected)")


# -----------------------
# Admin identities
# -----------------------
def admin_emails() -> set[str]:
    """
    Allow-list of admin accounts, matched against the profile email.

    ADMIN_EMAILS=ops@rentcircle.in,founder@rentcircle.in
    """
    raw = (os.environ.get("ADMIN_EMAILS") or "").strip()
    return {x.strip().lower() for x in raw.split(",") if x.strip()}


def seed_admin_email() -> str:
    return (os.environ.get("ADMIN_EMAIL") or "").strip().lower()


def seed_admin_password() -> str:
    return (os.environ.get("ADMIN_PASSWORD") or "").strip()


# -----------------------
# Listing rules
# -----------------------
def listing_quota() -> int:
    """Maximum number of non-rejected listings one owner may hold."""
    return _int_env("LISTING_QUOTA", 2, lo=1, hi=100)


def min_listing_images() -> int:
    return _int_env("MIN_LISTING_IMAGES", 2, lo=1, hi=20)


def max_listing_images() -> int:
    return _int_env("MAX_LISTING_IMAGES", 5, lo=min_listing_images(), hi=20)


def max_upload_image_bytes() -> int:
    return _int_env("MAX_UPLOAD_IMAGE_BYTES", 8 * 1024 * 1024, lo=64 * 1024, hi=50 * 1024 * 1024)


def upload_workers() -> int:
    return _int_env("UPLOAD_WORKERS", 4, lo=1, hi=16)


# -----------------------
# Reports
# -----------------------
def report_rate_limit() -> int:
    return _int_env("REPORT_RATE_LIMIT", 5, lo=1, hi=1000)


def report_rate_window_seconds() -> int:
    return _int_env("REPORT_RATE_WINDOW", 600, lo=1, hi=86400)


# -----------------------
# Media storage
# -----------------------
def uploads_dir() -> str:
    return (os.environ.get("UPLOADS_DIR") or "uploads").strip() or "uploads"


def public_base_url() -> str:
    """Prefix for locally-stored upload URLs (empty means relative `/uploads/...`)."""
    return (os.environ.get("PUBLIC_BASE_URL") or "").strip().rstrip("/")


def cloudinary_folder() -> str:
    return (os.environ.get("CLOUDINARY_FOLDER") or "rentcircle").strip() or "rentcircle"
