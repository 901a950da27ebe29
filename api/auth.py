# api/auth.py
from fastapi import HTTPException, Security
import os
import logging
from fastapi.security.api_key import APIKeyHeader
from dotenv import load_dotenv

load_dotenv()
API_KEY = os.getenv("API_KEY")
APIKEY_NAME = "X-API-Key"
api_key_header = APIKeyHeader(name=APIKEY_NAME, auto_error=False)

logger = logging.getLogger("api.auth")
logger.setLevel(logging.INFO)


async def get_api_key(api_key_header: str = Security(api_key_header)):
    """
    FastAPI dependency guarding every bookstore endpoint.

    Args:
        api_key_header (str): Value of the X-API-Key header, or None

    Returns:
        str: The accepted key

    Raises:
        HTTPException: 401 when the header is absent
        HTTPException: 403 when the key is wrong, or when the server has no
            API_KEY configured (no key is accepted then)
    """
    if not api_key_header:
        raise HTTPException(status_code=401, detail="Missing API Key")
    if not API_KEY or api_key_header != API_KEY:
        logger.warning("Rejected request with invalid API key")
        raise HTTPException(status_code=403, detail="Forbidden")
    return api_key_header
