from app.repositories.appointments import (
    SqlAppointmentRepository,
    SqlPatientRepository,
    SqlUserRepository,
    appointment_to_entity,
)
