import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse
from firebase_admin import _apps, auth, credentials, initialize_app

from app.core.config import config

logger = logging.getLogger(__name__)

firebase_app = None

PUBLIC_PATHS = ("/docs", "/openapi.json", "/redoc", "/health")


def init_firebase():
    global firebase_app
    if not _apps and not config.is_testing:
        cred = credentials.Certificate(config.firebase_credentials_path)
        options = {}
        if config.firebase_storage_bucket:
            options["storageBucket"] = config.firebase_storage_bucket
        firebase_app = initialize_app(cred, options)


def verify_token(token: str) -> dict:
    return auth.verify_id_token(token, firebase_app)


async def authenticate_request(request: Request, call_next):
    if request.url.path.startswith(PUBLIC_PATHS):
        return await call_next(request)

    auth_header = request.headers.get("Authorization")

    if not auth_header:
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": "Authorization header is missing"},
        )

    token = auth_header.split(" ")[1] if " " in auth_header else None
    if not token:
        return JSONResponse(
            status_code=status.HTTP_403_FORBIDDEN,
            content={"detail": "Invalid or missing authentication token"},
        )

    if config.is_testing:
        return await call_next(request)

    try:
        user = verify_token(token)
    except (ValueError, auth.InvalidIdTokenError, auth.ExpiredIdTokenError) as e:
        logger.info("Rejected token: %s", e)
        return JSONResponse(
            status_code=status.HTTP_401_UNAUTHORIZED,
            content={"detail": f"{e}"},
        )
    except auth.CertificateFetchError as e:
        logger.error("Could not fetch firebase certificates: %s", e)
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Authentication service unavailable"},
        )

    request.state.user = user
    return await call_next(request)
