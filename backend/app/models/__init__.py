from app.models.activity_log import ActivityLog  # noqa: F401
from app.models.class_group import ClassGroup  # noqa: F401
from app.models.notification import Notification, NotificationPriority, NotificationType  # noqa: F401
from app.models.schedule import Schedule, ScheduleStatus  # noqa: F401
from app.models.special_class import (  # noqa: F401
    SpecialClass,
    SpecialClassRegistration,
    SpecialClassStatus,
    SpecialClassType,
)
from app.models.subject import Subject  # noqa: F401
from app.models.substitution import Substitution, SubstitutionStatus  # noqa: F401
from app.models.timetable import Timetable, TimeSlot  # noqa: F401
from app.models.user import User, UserRole  # noqa: F401
