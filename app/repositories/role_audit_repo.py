# app/repositories/role_audit_repo.py
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from app.models.role_transition import RoleTransition


class RoleAuditRepository:

    def __init__(self, engine: Engine):
        self.engine = engine

    def record(
        self,
        user_id: str,
        previous_role: str | None,
        new_role: str,
        trigger: str,
    ) -> RoleTransition:
        row = RoleTransition(
            user_id=user_id,
            previous_role=previous_role,
            new_role=new_role,
            trigger=trigger,
        )
        with Session(self.engine) as session:
            session.add(row)
            session.commit()
            session.refresh(row)
        return row

    def list_for_user(self, user_id: str, limit: int = 50) -> list[RoleTransition]:
        with Session(self.engine) as session:
            stmt = (
                select(RoleTransition)
                .where(RoleTransition.user_id == user_id)
                .order_by(RoleTransition.created_at.desc())
                .limit(limit)
            )
            return list(session.exec(stmt).all())
