"""
Runtime configuration for the Darpan Wears backend.

Values come from the environment (a local .env file is honoured).
"""
import os

from dotenv import load_dotenv

load_dotenv()

STORE_NAME = os.getenv("STORE_NAME", "Darpan Wears")

# Database
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
DATABASE_TIMEOUT_MS = int(os.getenv("DATABASE_TIMEOUT_MS", "5000"))

# Sessions
JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
JWT_ALGO = "HS256"
CUSTOMER_SESSION_DAYS = int(os.getenv("CUSTOMER_SESSION_DAYS", "30"))
ADMIN_SESSION_HOURS = int(os.getenv("ADMIN_SESSION_HOURS", "12"))

# Placeholder gate for the admin console, not a security boundary
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "darpan2025")

# Orders are dispatched to this WhatsApp number
MERCHANT_WHATSAPP_NUMBER = os.getenv("MERCHANT_WHATSAPP_NUMBER", "919332307996")

# AI assistant
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL") or None
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_TIMEOUT = float(os.getenv("OPENAI_TIMEOUT", "30"))
OPENAI_MAX_RETRIES = int(os.getenv("OPENAI_MAX_RETRIES", "2"))

PORT = int(os.getenv("PORT", 8000))
