from sqlalchemy.orm import Session
from typing import Optional
from .user_model import User


def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
    """
    Retrieve user by ID.
    """
    return db.query(User).filter(User.id == user_id).first()


def is_active_user(db: Session, user_id: int) -> bool:
    """
    Identity check used before trusting a session owner.
    """
    user = get_user_by_id(db, user_id)
    return bool(user and user.is_active)


def create_user(db: Session, email: Optional[str] = None, name: Optional[str] = None) -> User:
    user = User(email=email, name=name, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user
