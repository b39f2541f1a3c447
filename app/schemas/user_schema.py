from datetime import datetime
from typing import Annotated, Union

import phonenumbers
from pydantic import BaseModel, ConfigDict, EmailStr
from pydantic_extra_types.phone_numbers import PhoneNumberValidator
from sqlmodel import Field, SQLModel

# stored as +91XXXXXXXXXX, numbers without a country code are treated as Indian
PhoneNumberE164 = Annotated[
    Union[str, phonenumbers.PhoneNumber],
    PhoneNumberValidator(default_region="IN", number_format="E164"),
]


class UserBase(SQLModel):
    model_config = ConfigDict(extra="forbid")
    firstname: str = Field(min_length=1, max_length=255)
    lastname: str = Field(min_length=1, max_length=255)
    email: EmailStr = Field(unique=True, max_length=255)
    phone_number: str | None = Field(default=None, max_length=255)


class RegisterFormRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")
    firstname: str = Field(min_length=1, max_length=255)
    lastname: str = Field(min_length=1, max_length=255)
    phone_number: PhoneNumberE164 | None = None


class UserGet(SQLModel):
    model_config = ConfigDict(extra="forbid")
    id: int
    firstname: str
    lastname: str
    email: EmailStr
    phone_number: str | None = None
    created_at: datetime


class UserProfileUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")
    firstname: str | None = Field(default=None, min_length=1, max_length=255)
    lastname: str | None = Field(default=None, min_length=1, max_length=255)
    phone_number: PhoneNumberE164 | None = None


class ProfileUser(SQLModel):
    id: int
    firstname: str
    lastname: str
    email: EmailStr
    phone_number: str | None = None
    rating: float | None = Field(default=None, ge=1, le=5)
    total_sales: int = Field(default=0, ge=0)
    is_admin: bool = False


# this is used to display the other party in listing cards, chats and transactions
class UserInfoCard(SQLModel):
    model_config = ConfigDict(extra="forbid")
    id: int
    firstname: str
    lastname: str
    rating: float | None = None


class DeviceTokenCreate(BaseModel):
    token: str = Field(min_length=1, max_length=4096)
