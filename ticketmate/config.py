import os

# Runtime environment
# "development" exposes internal error messages in API responses
APP_ENV = os.environ.get("APP_ENV", "production")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")

# DynamoDB Configuration
# For local testing, point DYNAMODB_ENDPOINT_URL at dynamodb-local
AWS_REGION = os.environ.get("AWS_REGION", "eu-west-1")
DYNAMODB_ENDPOINT_URL = os.environ.get("DYNAMODB_ENDPOINT_URL")
USERS_TABLE = os.environ.get("USERS_TABLE", "Users")
EVENTS_TABLE = os.environ.get("EVENTS_TABLE", "Events")
OTPS_TABLE = os.environ.get("OTPS_TABLE", "Otps")
BOOKINGS_TABLE = os.environ.get("BOOKINGS_TABLE", "Bookings")

# JWT
JWT_SECRET = os.environ.get("JWT_SECRET", "change-me")
JWT_ALGORITHM = "HS256"
JWT_EXPIRES_DAYS = int(os.environ.get("JWT_EXPIRES_DAYS", "7"))
RESET_TOKEN_TTL_SECONDS = int(os.environ.get("RESET_TOKEN_TTL_SECONDS", "600"))

# Paystack
PAYSTACK_SECRET_KEY = os.environ.get("PAYSTACK_SECRET_KEY")
PAYSTACK_BASE_URL = os.environ.get("PAYSTACK_BASE_URL", "https://api.paystack.co")
PAYSTACK_CURRENCY = os.environ.get("PAYSTACK_CURRENCY", "GHS")

# Hubtel SMS
HUBTEL_CLIENT_ID = os.environ.get("HUBTEL_CLIENT_ID")
HUBTEL_CLIENT_SECRET = os.environ.get("HUBTEL_CLIENT_SECRET")
HUBTEL_SENDER_ID = os.environ.get("HUBTEL_SENDER_ID")
HUBTEL_BASE_URL = os.environ.get("HUBTEL_BASE_URL", "https://smsc.hubtel.com/v1")

# Outbound HTTP
REQUEST_TIMEOUT = float(os.environ.get("REQUEST_TIMEOUT", "30"))  # Seconds, applies to gateway and SMS calls

# OTP
OTP_TTL_SECONDS = int(os.environ.get("OTP_TTL_SECONDS", "600"))  # 10 minutes
OTP_MAX_ATTEMPTS = int(os.environ.get("OTP_MAX_ATTEMPTS", "5"))
