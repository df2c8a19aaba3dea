from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from ...core.database import get_db
from ...core.security import UserRole
from ...api.deps import get_admin_caller
from ...services.user_service import UserService
from ...schemas.auth import UserResponse, UserUpdate
from ...schemas.scheduling import MessageResponse

router = APIRouter(
    prefix="/users",
    tags=["Users"],
    dependencies=[Depends(get_admin_caller)],
)

@router.get("", response_model=List[UserResponse])
def list_users(
    role: Optional[UserRole] = None,
    db: Session = Depends(get_db)
):
    """List all users, optionally filtered by role (admin only)."""
    return [UserResponse.model_validate(u) for u in UserService(db).list_users(role)]

@router.get("/staff", response_model=List[UserResponse])
def list_staff(db: Session = Depends(get_db)):
    """List staff users (admin only)."""
    return [UserResponse.model_validate(u) for u in UserService(db).list_staff()]

@router.patch("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: int,
    update: UserUpdate,
    db: Session = Depends(get_db)
):
    """Update a user's name, email, role or password (admin only)."""
    return UserResponse.model_validate(UserService(db).update_user(user_id, update))

@router.delete("/{user_id}", response_model=MessageResponse)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db)
):
    """Delete an account with its appointments and owned time slots (admin only)."""
    UserService(db).delete_user(user_id)
    return {"message": "User deleted"}
