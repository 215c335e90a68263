from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from mediqueue.auth.dependencies import get_current_user
from mediqueue.models.profile import Profile

router = APIRouter(tags=['auth'])


class ProfileResponse(BaseModel):
    id: int
    email: str
    full_name: str
    role: str
    created_at: datetime | None = None

    class Config:
        from_attributes = True


@router.get('/me', response_model=ProfileResponse)
def me(current_user: Profile = Depends(get_current_user)):
    return ProfileResponse.model_validate(current_user)
