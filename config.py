# snapcaption_backend/config.py
import os
import logging
from dotenv import load_dotenv
import cloudinary

# --- Load Environment Variables ---
load_dotenv()  # Load .env file in project root

# --- Logging Setup ---
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s"
)
logger = logging.getLogger("snapcaption_backend")

# --- Environment ---
APP_ENV = os.getenv("APP_ENV", "development").lower()
IS_PRODUCTION = APP_ENV == "production"
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# --- Database ---
MONGO_URI = os.getenv("MONGO_URI")
if not MONGO_URI:
    logger.warning("MONGO_URI is missing! Falling back to local MongoDB.")
    MONGO_URI = "mongodb://localhost:27017"
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "snapcaption_db")

# --- Auth (JWT) ---
JWT_SECRET = os.getenv("JWT_SECRET")
if not JWT_SECRET:
    logger.warning("JWT_SECRET is missing! Tokens cannot be issued safely.")
JWT_ALGORITHM = "HS256"
TOKEN_EXPIRES_SECONDS = 60 * 60  # fixed 1 hour
AUTH_COOKIE_NAME = "token"

# --- Groq (caption generation) ---
GROQ_API_KEY_CAPTION = os.getenv("GROQ_API_KEY_CAPTION") or os.getenv("GROQ_API_KEY")
if not GROQ_API_KEY_CAPTION:
    logger.warning("GROQ_API_KEY_CAPTION is missing! Caption generation will fail.")
CAPTION_MODEL = os.getenv("CAPTION_MODEL", "meta-llama/llama-4-scout-17b-16e-instruct")

# --- Cloudinary (Post Image Storage) ---
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET")
CLOUDINARY_FOLDER = os.getenv("CLOUDINARY_FOLDER", "ai-social-posts")

if not all([
    CLOUDINARY_CLOUD_NAME,
    CLOUDINARY_API_KEY,
    CLOUDINARY_API_SECRET
]):
    logger.warning("⚠️ Cloudinary credentials for post images are missing")

cloudinary.config(
    cloud_name=CLOUDINARY_CLOUD_NAME,
    api_key=CLOUDINARY_API_KEY,
    api_secret=CLOUDINARY_API_SECRET,
    secure=True
)

# --- Uploads ---
MAX_POST_IMAGE_BYTES = 4 * 1024 * 1024
MAX_PROFILE_PICTURE_BYTES = 2 * 1024 * 1024
ALLOWED_IMAGE_TYPES = ["image/jpeg", "image/jpg", "image/png", "image/webp"]

# --- Outbound AI Rate Limiting ---
CALLS_PER_MINUTE = 50
PERIOD = 60  # seconds

# --- Inbound Rate Limiting (requests, window seconds) ---
API_RATE_LIMIT = (300, 15 * 60)
AUTH_RATE_LIMIT = (50, 15 * 60)
USER_STATUS_RATE_LIMIT = (500, 60)
POST_RATE_LIMIT = (3, 60)
