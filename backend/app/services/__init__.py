from app.services import security
from app.services.auth import (
    AuthenticationError,
    authenticate_user,
    create_access_token_for_user,
    ensure_seed_data,
    get_role_by_code,
)
