from typing import Dict, List
from fitslot.database import Database, DatabaseManager
from fitslot.errors import NotFoundError, ValidationError
from fitslot.models import User
from fitslot.models.user import UserRole
from fitslot.utils.security import generate_token
from fitslot.utils.validators import validate_email
from fitslot.utils.logger import get_logger

logger = get_logger(__name__)


class UserService:
    """Service for user management"""

    def __init__(self, database: Database):
        self.database = database
        self.user_db = DatabaseManager(database, User)

    def create_user(self, email: str, first_name: str = None, last_name: str = None,
                    phone: str = None, role: UserRole = UserRole.CLIENT) -> Dict:
        valid, error = validate_email(email)
        if not valid:
            raise ValidationError(error)
        email = email.lower()
        if self.user_db.exists(email=email):
            raise ValidationError('Email already registered', code='EMAIL_TAKEN')

        if not isinstance(role, UserRole):
            try:
                role = UserRole(role)
            except ValueError:
                raise ValidationError(f'Invalid role: {role!r}')

        # Balance starts at zero and only moves through the ledger
        user = self.user_db.create(
            email=email,
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            role=role,
            is_active=True,
            credits=0
        )
        logger.info(f"User created: {user.id} ({user.role.value})")
        return user.to_dict()

    def get_user(self, user_id: int) -> Dict:
        user = self.user_db.get(user_id)
        if not user:
            raise NotFoundError('User not found')
        return user.to_dict()

    def list_clients(self) -> List[Dict]:
        with self.database.session() as db:
            users = db.query(User).filter(User.role == UserRole.CLIENT).order_by(
                User.last_name, User.first_name, User.id
            ).all()
            return [u.to_dict() for u in users]

    def issue_token(self, user_id: int) -> str:
        """Access token for an existing user"""
        user = self.user_db.get(user_id)
        if not user or not user.is_active:
            raise NotFoundError('User not found')
        return generate_token({'user_id': user.id, 'email': user.email, 'role': user.role.value})
