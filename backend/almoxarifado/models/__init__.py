from .inventory import Material, Movement, MOVEMENT_KINDS, MOVEMENT_STATUSES
from .auth import User, SessionToken, USER_ROLES
from .security import SecurityEvent

__all__ = [
    'Material', 'Movement', 'MOVEMENT_KINDS', 'MOVEMENT_STATUSES',
    'User', 'SessionToken', 'USER_ROLES',
    'SecurityEvent',
]
