from mathkids.models.auth import PasswordResetToken, PersistentToken  # noqa: F401
from mathkids.models.user import User  # noqa: F401
