from enum import Enum, IntEnum


class UserRole(str, Enum):
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    PARENT = "parent"


class AssignmentType(str, Enum):
    TRIP = "trip"
    ROUTE = "route"
    BLOCK = "block"


class AssignmentStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class DirectionType(IntEnum):
    OUTBOUND = 0
    INBOUND = 1


class Permission(str, Enum):
    # User management
    CREATE_USER = "create_user"
    LIST_USER = "list_user"
    UPDATE_USER = "update_user"
    DELETE_USER = "delete_user"
    CREATE_ADMIN = "create_admin"
    # Agency management
    CREATE_AGENCY = "create_agency"
    LIST_AGENCY = "list_agency"
    UPDATE_AGENCY = "update_agency"
    UPDATE_AGENCY_IDENTITY = "update_agency_identity"
    DELETE_AGENCY = "delete_agency"
    VIEW_ANY_AGENCY = "view_any_agency"
    # Relationship management
    ASSIGN_AGENCY_ADMIN = "assign_agency_admin"
    ASSIGN_ROUTE_AGENCY = "assign_route_agency"
    ASSIGN_TRIP_ROUTE = "assign_trip_route"
    # Transit data management
    MANAGE_ROUTE = "manage_route"
    MANAGE_TRIP = "manage_trip"
    MANAGE_CALENDAR = "manage_calendar"
    MANAGE_SHAPE = "manage_shape"
    MANAGE_DRIVER = "manage_driver"
    MANAGE_STUDENT = "manage_student"
    # Messaging
    REPLY_MESSAGE = "reply_message"
    READ_ALL_MESSAGE = "read_all_message"
