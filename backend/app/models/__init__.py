from app.models.appointment import Appointment, AppointmentStatusHistory
from app.models.audit import AuditEvent
from app.models.patient import Patient
from app.models.theater import SurgicalCase, Theater, TheaterBooking
from app.models.user import Role, User
