# turnos/directory.py

from typing import Optional

from sqlmodel import Session, select

from turnos.errors import NotFoundError, RejectionReason, ValidationRejection
from turnos.models import User
from turnos.schemas import UserRole


class UserDirectory:
    """User lookups the scheduling code needs: by id, by email, by role."""

    def __init__(self, session: Session):
        self.session = session

    def get_by_id(self, user_id: int) -> Optional[User]:
        return self.session.get(User, user_id)

    def get_by_email(self, email: str) -> Optional[User]:
        return self.session.exec(select(User).where(User.email == email)).first()

    def exists_with_role(self, user_id: int, role: UserRole) -> bool:
        user = self.get_by_id(user_id)
        return user is not None and user.role == role.value

    def require_barber(self, barber_id: int, lock: bool = False) -> User:
        """Fetch the barber; with lock=True the row stays locked until commit.

        Locking the barber row serializes check-then-write for that barber's
        agenda on databases that support SELECT ... FOR UPDATE.
        """
        stmt = select(User).where(User.id == barber_id)
        if lock:
            stmt = stmt.with_for_update()
        barber = self.session.exec(stmt).first()
        if barber is None:
            raise NotFoundError(RejectionReason.BARBER_NOT_FOUND, "Barber not found")
        if barber.role != UserRole.barber.value:
            raise ValidationRejection(
                RejectionReason.BARBER_INVALID_ROLE,
                "The selected user is not a barber",
            )
        return barber

    def require_client(self, client_id: int) -> User:
        client = self.get_by_id(client_id)
        if client is None:
            raise NotFoundError(RejectionReason.CLIENT_NOT_FOUND, "Client not found")
        if client.role != UserRole.client.value:
            raise ValidationRejection(
                RejectionReason.CLIENT_INVALID_ROLE,
                "The selected user is not a client",
            )
        return client
