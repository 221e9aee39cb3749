import os
import logging
from dotenv import load_dotenv
from botocore.client import Config as BotoConfig
import boto3

# Load .env from project root
try:
    load_dotenv(dotenv_path=os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".env")))
except Exception:
    try:
        load_dotenv()
    except Exception:
        pass


def _clean(value: str) -> str:
    return (value or "").strip().strip('"').strip("'").strip('`')


# Payments (Stripe)
STRIPE_SECRET_KEY = _clean(os.getenv("STRIPE_SECRET_KEY", ""))
STRIPE_WEBHOOK_SECRET = _clean(os.getenv("STRIPE_WEBHOOK_SECRET", ""))
STRIPE_API_BASE = (os.getenv("STRIPE_API_BASE", "https://api.stripe.com") or "https://api.stripe.com").rstrip("/")
STRIPE_TIMEOUT_SEC = float(os.getenv("STRIPE_TIMEOUT_SEC", "10"))

# Object storage (Cloudflare R2 / any S3-compatible endpoint)
R2_ACCOUNT_ID = os.getenv("R2_ACCOUNT_ID", "")
R2_ACCESS_KEY_ID = os.getenv("R2_ACCESS_KEY_ID", "")
R2_SECRET_ACCESS_KEY = os.getenv("R2_SECRET_ACCESS_KEY", "")
R2_ENDPOINT_URL = _clean(os.getenv("R2_ENDPOINT_URL", "")).rstrip("/")
if not R2_ENDPOINT_URL and R2_ACCOUNT_ID:
    R2_ENDPOINT_URL = f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com"
ORDER_IMAGES_BUCKET = _clean(os.getenv("ORDER_IMAGES_BUCKET", "order-images")) or "order-images"
R2_PUBLIC_BASE_URL = _clean(os.getenv("R2_PUBLIC_BASE_URL", "")).rstrip("/")
STORAGE_TIMEOUT_SEC = float(os.getenv("STORAGE_TIMEOUT_SEC", "10"))

# Max simultaneous uploads per ingestion batch
UPLOAD_CONCURRENCY = max(1, int(os.getenv("UPLOAD_CONCURRENCY", "4")))

DATABASE_URL = os.getenv("DATABASE_URL", "")

REQUIRED_ENV = (
    "STRIPE_SECRET_KEY",
    "STRIPE_WEBHOOK_SECRET",
    "R2_ACCESS_KEY_ID",
    "R2_SECRET_ACCESS_KEY",
    "DATABASE_URL",
)


def missing_required_env() -> list[str]:
    return [name for name in REQUIRED_ENV if not (os.getenv(name) or "").strip()]


# Logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("cardorders")

# S3/R2 resource for order image uploads; None when storage is not configured
s3 = None

if R2_ENDPOINT_URL and R2_ACCESS_KEY_ID and R2_SECRET_ACCESS_KEY:
    # Uploads are create-only and never retried here; the ingestion pipeline owns retry policy
    s3 = boto3.resource(
        "s3",
        endpoint_url=R2_ENDPOINT_URL,
        aws_access_key_id=R2_ACCESS_KEY_ID,
        aws_secret_access_key=R2_SECRET_ACCESS_KEY,
        config=BotoConfig(
            signature_version="s3v4",
            connect_timeout=STORAGE_TIMEOUT_SEC,
            read_timeout=STORAGE_TIMEOUT_SEC,
            retries={"max_attempts": 1, "mode": "standard"},
        ),
        region_name="auto",
    )
