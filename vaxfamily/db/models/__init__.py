from sqlmodel import SQLModel
from .appointment import Appointment, AppointmentStatus, AppointmentType
from .family_member import FamilyMember, Partition, VaccineStatus, OWNER_RELATIONSHIP
from .notification import Notification, NotificationType
from .staff import StaffMember

__all__ = [
    "SQLModel",
    "Appointment",
    "AppointmentStatus",
    "AppointmentType",
    "FamilyMember",
    "Partition",
    "VaccineStatus",
    "OWNER_RELATIONSHIP",
    "Notification",
    "NotificationType",
    "StaffMember",
]
