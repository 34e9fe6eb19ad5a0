from fastapi import APIRouter, Depends, HTTPException, status
from datetime import timedelta

from app.database import users_collection
from app.models.user_model import (
    UserCreate,
    UserResponse,
    UserLogin,
    Token,
    UserUpdate,
    PasswordChange,
    UserInDB,
)
from app.utils.auth import (
    get_password_hash,
    verify_password,
    create_access_token,
    get_current_active_user,
)
from app.utils.helpers import utcnow
from app.config import settings

router = APIRouter()


def _public(user: dict) -> UserResponse:
    user.pop("hashed_password", None)
    user.pop("_id", None)
    return UserResponse(**user)


@router.post(
    "/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED
)
async def register_user(user: UserCreate):
    """Register a new user"""
    if await users_collection.find_one({"email": user.email}):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered"
        )

    if await users_collection.find_one({"username": user.username}):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Username already taken"
        )

    user_in_db = UserInDB(
        email=user.email,
        username=user.username,
        full_name=user.full_name,
        phone_number=user.phone_number,
        hashed_password=get_password_hash(user.password),
    )
    result = await users_collection.insert_one(user_in_db.model_dump())

    created_user = await users_collection.find_one({"_id": result.inserted_id})
    return _public(created_user)


@router.post("/login", response_model=Token)
async def login(user_credentials: UserLogin):
    """Login and get access token"""
    user = await users_collection.find_one({"email": user_credentials.email})

    if not user or not verify_password(
        user_credentials.password, user["hashed_password"]
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.get("is_active", True):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Inactive user"
        )

    await users_collection.update_one(
        {"id": user["id"]}, {"$set": {"last_login": utcnow()}}
    )

    access_token = create_access_token(
        data={"sub": user["id"]},
        expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    return {"access_token": access_token, "token_type": "bearer"}


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: dict = Depends(get_current_active_user)):
    """Get current user information"""
    return _public(current_user)


@router.put("/me", response_model=UserResponse)
async def update_current_user(
    user_update: UserUpdate, current_user: dict = Depends(get_current_active_user)
):
    """Update current user information"""
    update_data = user_update.model_dump(exclude_none=True)
    update_data["updated_at"] = utcnow()

    await users_collection.update_one(
        {"id": current_user["id"]}, {"$set": update_data}
    )

    updated_user = await users_collection.find_one({"id": current_user["id"]})
    return _public(updated_user)


@router.post("/change-password")
async def change_password(
    password_change: PasswordChange,
    current_user: dict = Depends(get_current_active_user),
):
    """Change user password"""
    if not verify_password(
        password_change.old_password, current_user["hashed_password"]
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Incorrect password"
        )

    await users_collection.update_one(
        {"id": current_user["id"]},
        {
            "$set": {
                "hashed_password": get_password_hash(password_change.new_password),
                "updated_at": utcnow(),
            }
        },
    )

    return {"message": "Password changed successfully"}
