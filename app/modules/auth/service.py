"""
Directorio de operadores: resuelve identidades para mostrar en historial.
"""
from typing import Dict, Iterable, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from app.modules.auth.models import User


class UserDirectory:
    def __init__(self, db: Session):
        self.db = db

    def get_active_user(self, user_id: UUID) -> Optional[User]:
        stmt = (
            select(User)
            .options(selectinload(User.user_locations))
            .where(User.id == user_id, User.is_active.is_(True))
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def resolve_names(self, user_ids: Iterable[Optional[UUID]]) -> Dict[UUID, str]:
        """Nombre completo por id; los ids desconocidos simplemente no aparecen."""
        ids = {user_id for user_id in user_ids if user_id}
        if not ids:
            return {}
        users = self.db.execute(select(User).where(User.id.in_(ids))).scalars()
        return {user.id: user.full_name for user in users}
