from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio.session import AsyncSession
from sqlmodel import select

from app.api.dependencies import get_async_session
from app.models.firebase_cloud_token_model import FirebaseCloudToken
from app.schemas.user_schema import DeviceTokenCreate, ProfileUser, UserProfileUpdate
from app.services.user.user_service import UserService

router = APIRouter(prefix="/profile", tags=["Profile"])


async def build_profile(user_service: UserService) -> ProfileUser:
    current_user = await user_service.get_current_user()
    user_rating = await user_service.get_seller_rating(current_user.id)
    return ProfileUser(
        id=current_user.id,
        firstname=current_user.firstname,
        lastname=current_user.lastname,
        email=current_user.email,
        phone_number=current_user.phone_number,
        rating=user_rating,
        total_sales=current_user.total_sales,
        is_admin=current_user.is_admin,
    )


@router.get("", response_model=ProfileUser)
async def get_profile(
    *,
    user_service: UserService = Depends(UserService.get_dependency),
):
    return await build_profile(user_service)


@router.patch(
    "",
    response_model=ProfileUser,
    summary="Update the current user's profile",
    description="Only the provided fields are changed.",
)
async def update_profile(
    *,
    update_data: UserProfileUpdate,
    session: AsyncSession = Depends(get_async_session),
    user_service: UserService = Depends(UserService.get_dependency),
):
    current_user = await user_service.get_current_user()

    user_data = update_data.model_dump(exclude_unset=True, exclude_none=True)
    current_user.sqlmodel_update(user_data)
    session.add(current_user)
    await session.commit()

    return await build_profile(user_service)


@router.post(
    "/device-tokens",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Register a device for push notifications",
)
async def register_device_token(
    *,
    token_data: DeviceTokenCreate,
    session: AsyncSession = Depends(get_async_session),
    user_service: UserService = Depends(UserService.get_dependency),
):
    current_user = await user_service.get_current_user()

    result = await session.execute(
        select(FirebaseCloudToken).where(
            FirebaseCloudToken.user_id == current_user.id,
            FirebaseCloudToken.token == token_data.token,
        )
    )
    if result.scalars().one_or_none() is None:
        session.add(FirebaseCloudToken(token=token_data.token, user_id=current_user.id))
        await session.commit()
