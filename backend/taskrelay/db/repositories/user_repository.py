from __future__ import annotations

from collections.abc import Iterable
from typing import Any, cast

from sqlmodel import Session, select

from taskrelay.db.models import User


class UserRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, user: User) -> User:
        self.session.add(user)
        self.session.flush()
        return user

    def get(self, user_id: int) -> User | None:
        return self.session.get(User, user_id)

    def get_by_email(self, email: str) -> User | None:
        return self.session.exec(select(User).where(User.email == email)).first()

    def get_many(self, user_ids: Iterable[int]) -> dict[int, User]:
        wanted = {user_id for user_id in user_ids}
        if not wanted:
            return {}
        users = self.session.exec(select(User).where(cast(Any, User.id).in_(wanted))).all()
        return {user.id: user for user in users if user.id is not None}
