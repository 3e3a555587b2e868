from app.api.v1 import appointments, audit, auth, consultations, theaters

__all__ = [
    "auth",
    "appointments",
    "consultations",
    "theaters",
    "audit",
]
