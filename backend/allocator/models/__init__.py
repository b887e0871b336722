from allocator.models.allocation_event import AllocationEvent  # noqa: F401
from allocator.models.course import Course, CourseType  # noqa: F401
from allocator.models.course_request import CourseRequest, RequestStatus  # noqa: F401
from allocator.models.exam import Exam, ExamType, InvigilatorMode  # noqa: F401
from allocator.models.offering import CourseOffering  # noqa: F401
from allocator.models.room import Room, RoomType  # noqa: F401
from allocator.models.room_assignment import RoomAssignment  # noqa: F401
from allocator.models.section import Section  # noqa: F401
from allocator.models.section_record import SectionRecord, SectionRecordStatus  # noqa: F401
from allocator.models.slot_reservation import SlotReservation  # noqa: F401
from allocator.models.time_slot import TimeSlot  # noqa: F401
from allocator.models.user import User, UserRole  # noqa: F401
