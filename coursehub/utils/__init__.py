from .auth import role_required, allows, resolve_identity
