# backend/config/secret.py
import os
import urllib.parse
from dotenv import load_dotenv

# Load variables from .env file
load_dotenv()

"""
Ballot service configuration
Update CONTRACT_ADDRESS after deploying the Voting contract
"""

# Blockchain Configuration
RPC_URL = os.getenv("RPC_URL", "http://127.0.0.1:8545")

# IMPORTANT: Update this after deploying the contract
CONTRACT_ADDRESS = os.getenv("CONTRACT_ADDRESS", "")

# Service account that signs and pays for every transaction
ADMIN_PRIVATE_KEY = os.getenv(
    "ADMIN_PRIVATE_KEY", os.getenv("METAMASK_ACCOUNT_PRIVATE_KEY", "")
)

# ABI Path (empty = bundled ABI with the four consumed functions)
ABI_PATH = os.getenv("ABI_PATH", "")

# Gas policy
REGISTER_GAS_BUFFER = int(os.getenv("REGISTER_GAS_BUFFER", "3000"))
VOTE_GAS_PERCENT = int(os.getenv("VOTE_GAS_PERCENT", "120"))

# Seconds to wait for a receipt before reporting the outcome as unknown
CONFIRMATION_TIMEOUT = float(os.getenv("CONFIRMATION_TIMEOUT", "60"))

# Admin JWT for /add-candidate (empty = route left open)
JWT_SECRET = os.getenv("JWT_SECRET", "")

# MySQL Configuration, used when DATABASE_URL is not given
MYSQL_CONFIG = {
    "user": os.getenv("MYSQL_USER", "root"),
    "password": os.getenv("MYSQL_PASSWORD", "admin123"),
    "host": os.getenv("MYSQL_HOST", "127.0.0.1"),
    "port": os.getenv("MYSQL_PORT", "3306"),
    "database": os.getenv("MYSQL_DB", "ballot_ledger"),
}

DATABASE_URL = os.getenv("DATABASE_URL") or (
    f"mysql+pymysql://{MYSQL_CONFIG['user']}:"
    f"{urllib.parse.quote_plus(MYSQL_CONFIG['password'])}@"
    f"{MYSQL_CONFIG['host']}:{MYSQL_CONFIG['port']}/{MYSQL_CONFIG['database']}"
)

# HTTP server
PORT = int(os.getenv("PORT", "3000"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
