from typing import Optional
from sqlmodel import Session

from .....db.models import User
from .....application.ports.channel_sender import RecipientDirectory, Recipient


class SqlRecipientDirectory(RecipientDirectory):
    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: str) -> Optional[Recipient]:
        user = self.session.get(User, user_id)
        if not user or not user.is_active:
            return None
        return Recipient(user_id=user.id, email=user.email, phone=user.phone, name=user.name)
