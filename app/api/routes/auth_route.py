import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_async_session
from app.core.config import config
from app.models.user_model import User
from app.schemas.user_schema import RegisterFormRequest, UserGet
from app.services.user.exceptions import UserNotFound
from app.services.user.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register",
    response_model=UserGet,
    status_code=status.HTTP_201_CREATED,
    summary="Register the authenticated user",
    description="Creates the account of the signed in Firebase user. Only university e-mail addresses are accepted.",
)
async def register_user(
    *,
    register_form: RegisterFormRequest,
    session: AsyncSession = Depends(get_async_session),
    user_service: UserService = Depends(UserService.get_dependency),
):
    user_email = (user_service.user_metadata.get("email") or "").strip().lower()
    if not user_email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="The token does not contain an e-mail address.",
        )
    if not user_email.endswith(f"@{config.allowed_email_domain}"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Only @{config.allowed_email_domain} e-mail addresses can register.",
        )

    try:
        await user_service.get_user_by_email(user_email)
    except UserNotFound:
        pass
    else:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"User '{user_email}' is already registered.",
        )

    new_user = User(
        firstname=register_form.firstname,
        lastname=register_form.lastname,
        email=user_email,
        phone_number=register_form.phone_number,
    )
    session.add(new_user)
    await session.commit()
    logger.info("Registered user %s", new_user.id)

    return UserGet(
        id=new_user.id,
        firstname=new_user.firstname,
        lastname=new_user.lastname,
        email=new_user.email,
        phone_number=new_user.phone_number,
        created_at=new_user.created_at,
    )
