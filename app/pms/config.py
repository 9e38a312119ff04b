import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    secret_key: str
    auth_secret: str
    env: str
    database_url: str

    json_store_backend: str
    data_dir: str

    storage_backend: str
    local_storage_dir: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    twilio_account_sid: str
    twilio_auth_token: str
    twilio_from_number: str
    twilio_messaging_service_sid: str

    company_name: str
    company_phone: str


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def load_settings() -> Settings:
    secret_key = _getenv("SECRET_KEY", "change-me")
    return Settings(
        secret_key=secret_key,
        auth_secret=_getenv("AUTH_SECRET", secret_key),
        env=_getenv("ENV", "development"),
        database_url=_getenv("DATABASE_URL", "sqlite:///pms.db"),
        json_store_backend=_getenv("JSON_STORE_BACKEND", "database").lower(),
        data_dir=_getenv("DATA_DIR", os.path.join(os.getcwd(), "data")),
        storage_backend=_getenv("STORAGE_BACKEND", "local"),
        local_storage_dir=_getenv("LOCAL_STORAGE_DIR", os.path.join(os.getcwd(), "storage")),
        s3_endpoint=_getenv("S3_ENDPOINT", ""),
        s3_region=_getenv("S3_REGION", "nyc3"),
        s3_bucket=_getenv("S3_BUCKET", ""),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID", ""),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY", ""),
        twilio_account_sid=_getenv("TWILIO_ACCOUNT_SID", ""),
        twilio_auth_token=_getenv("TWILIO_AUTH_TOKEN", ""),
        twilio_from_number=_getenv("TWILIO_FROM_NUMBER", ""),
        twilio_messaging_service_sid=_getenv("TWILIO_MESSAGING_SERVICE_SID", ""),
        company_name=_getenv("COMPANY_NAME", "Orfane Tower"),
        company_phone=_getenv("COMPANY_PHONE", ""),
    )


def load_config() -> dict:
    s = load_settings()
    is_production = s.env in ("prod", "production")
    return {
        "SECRET_KEY": s.secret_key,
        "AUTH_SECRET": s.auth_secret,
        "ENV": s.env,
        "DATABASE_URL": s.database_url,
        "JSON_STORE_BACKEND": s.json_store_backend,
        "DATA_DIR": s.data_dir,
        "STORAGE_BACKEND": s.storage_backend,
        "LOCAL_STORAGE_DIR": s.local_storage_dir,
        "S3_ENDPOINT": s.s3_endpoint,
        "S3_REGION": s.s3_region,
        "S3_BUCKET": s.s3_bucket,
        "S3_ACCESS_KEY_ID": s.s3_access_key_id,
        "S3_SECRET_ACCESS_KEY": s.s3_secret_access_key,
        "TWILIO_ACCOUNT_SID": s.twilio_account_sid,
        "TWILIO_AUTH_TOKEN": s.twilio_auth_token,
        "TWILIO_FROM_NUMBER": s.twilio_from_number,
        "TWILIO_MESSAGING_SERVICE_SID": s.twilio_messaging_service_sid,
        "COMPANY_NAME": s.company_name,
        "COMPANY_PHONE": s.company_phone,
        # staff auth cookie (HMAC-signed token, not the Flask session)
        "AUTH_COOKIE_NAME": "pms_session",
        "AUTH_SESSION_HOURS": 12,
        "PORTAL_SESSION_DAYS": 7,
        # security defaults
        "SESSION_COOKIE_NAME": "pms_flask",
        "SESSION_COOKIE_HTTPONLY": True,
        "SESSION_COOKIE_SAMESITE": "Lax",
        "SESSION_COOKIE_SECURE": is_production,  # Require HTTPS in production
        # file upload limits (25MB)
        "MAX_CONTENT_LENGTH": 25 * 1024 * 1024,
    }
