from sqlalchemy import (
    JSON,
    TEXT,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Table,
    UniqueConstraint,
    create_engine,
    func,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from transitdesk.src.constants import DB_URL
from transitdesk.src.enums import AssignmentStatus, UserRole


# Global DBMS variables
connectArgs = {"check_same_thread": False} if DB_URL.startswith("sqlite") else {}
engine = create_engine(url=DB_URL, echo=False, connect_args=connectArgs)
sessionMaker = sessionmaker(bind=engine, expire_on_commit=False)
ORMbase = declarative_base()


# ----------------------------------- Account DB Models ---------------------------------------#
user_agency = Table(
    "user_agency",
    ORMbase.metadata,
    Column(
        "user_id",
        Integer,
        ForeignKey("user_account.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "agency_id",
        Integer,
        ForeignKey("agency.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class User(ORMbase):
    """
    Represents a login account of the system.

    Every account carries exactly one role. Superadmins manage the whole
    system, admins manage the agencies they are granted along with the parent
    accounts they created, parents follow their students and exchange messages.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the account.

        username (String(64)):
            Display name of the account holder.

        email (String(128)):
            Login identifier. Must be unique and not null.

        cin_number (String(32)):
            National identity card number.
            Optional and unique. Used to link students to their parent.

        phone_number (String(32)):
            Optional contact number.

        password (TEXT):
            Argon2 hash of the account password. Never returned by the API.

        role (String(16)):
            One of `UserRole`. Defaults to `parent`.

        myadmin (String(128)):
            Email of the admin that created this account.
            Accounts created by an admin inherit that admin's agencies.

        updated_on (DateTime):
            Timestamp automatically updated whenever the account is modified.

        created_on (DateTime):
            Timestamp indicating when the account was created.
    """

    __tablename__ = "user_account"

    id = Column(Integer, primary_key=True)
    username = Column(String(64), nullable=False)
    email = Column(String(128), nullable=False, unique=True)
    cin_number = Column(String(32), unique=True)
    phone_number = Column(String(32))
    password = Column(TEXT, nullable=False)
    role = Column(String(16), nullable=False, default=UserRole.PARENT.value)
    myadmin = Column(String(128), index=True)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
    # Relationships
    agencies = relationship(
        "Agency", secondary=user_agency, back_populates="users", order_by="Agency.id"
    )
    students = relationship("Student", back_populates="parent", order_by="Student.id")


class Student(ORMbase):
    """
    Represents a student transported by the system.

    The parent account is resolved through the natural key `cin_parent`,
    which must match the `cin_number` of an existing user.
    """

    __tablename__ = "student"

    id = Column(Integer, primary_key=True)
    username = Column(String(64), nullable=False)
    badge_id = Column(String(64), nullable=False, unique=True)
    cin_parent = Column(String(32), nullable=False, unique=True)
    phone_parent = Column(String(32), nullable=False)
    level = Column(String(32), nullable=False)
    parent_id = Column(
        Integer, ForeignKey("user_account.id", ondelete="SET NULL"), index=True
    )
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
    # Relationships
    parent = relationship("User", back_populates="students")


class Message(ORMbase):
    """
    Represents a message exchanged between parents and the administration.

    Columns:
        sender (String(160)):
            `Parent:<email>` for messages written by a parent, `Admin` otherwise.

        parent_message_id (Integer):
            Null for original messages. For replies, the message being
            answered. Replies are never nested.
    """

    __tablename__ = "message"

    id = Column(Integer, primary_key=True)
    sender = Column(String(160), nullable=False, index=True)
    content = Column(TEXT, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False, default=func.now())
    is_read = Column(Boolean, nullable=False, default=False)
    parent_message_id = Column(
        Integer, ForeignKey("message.id", ondelete="CASCADE"), index=True
    )
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


# ----------------------------------- Transit DB Models ---------------------------------------#
class Agency(ORMbase):
    """
    Represents a transit agency operating one or more routes.

    Columns:
        id (Integer):
            Primary key. Unique identifier for the agency.

        name (String(128)):
            Name of the agency. Must be unique.

        email (String(128)):
            Contact email of the agency.

        phone (String(32)):
            Contact phone number of the agency.

        website (String(256)):
            Public website of the agency.

        updated_on (DateTime):
            Timestamp automatically updated whenever the agency is modified.

        created_on (DateTime):
            Timestamp indicating when the agency was created.
    """

    __tablename__ = "agency"

    id = Column(Integer, primary_key=True)
    name = Column(String(128), nullable=False, unique=True)
    email = Column(String(128))
    phone = Column(String(32))
    website = Column(String(256))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
    # Relationships
    routes = relationship("Route", back_populates="agency", order_by="Route.id")
    users = relationship("User", secondary=user_agency, back_populates="agencies")


class Route(ORMbase):
    """
    Represents a GTFS route.

    A route belongs to an agency. The agency reference becomes null when the
    route is unassigned from it or when the agency is deleted.

    Columns:
        route_id (String(64)):
            GTFS identifier of the route. Must be unique.

        route_short_name (String(64)):
            Short public name of the route, such as the line number.

        route_type (String(16)):
            GTFS route type (bus, tram, ...).
    """

    __tablename__ = "route"

    id = Column(Integer, primary_key=True)
    route_id = Column(String(64), nullable=False, unique=True)
    route_short_name = Column(String(64), nullable=False)
    route_long_name = Column(String(256))
    route_type = Column(String(16))
    agency_id = Column(
        Integer, ForeignKey("agency.id", ondelete="SET NULL"), index=True
    )
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
    # Relationships
    agency = relationship("Agency", back_populates="routes")
    trips = relationship("Trip", back_populates="route", order_by="Trip.id")


class Calendar(ORMbase):
    """
    Represents a GTFS service calendar: the weekdays a service runs on within
    a date window. The end date must be later than the start date.
    """

    __tablename__ = "calendar"

    id = Column(Integer, primary_key=True)
    service_id = Column(String(64), nullable=False, unique=True)
    monday = Column(Boolean, nullable=False)
    tuesday = Column(Boolean, nullable=False)
    wednesday = Column(Boolean, nullable=False)
    thursday = Column(Boolean, nullable=False)
    friday = Column(Boolean, nullable=False)
    saturday = Column(Boolean, nullable=False)
    sunday = Column(Boolean, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
    # Relationships
    trips = relationship("Trip", back_populates="service")


class Trip(ORMbase):
    """
    Represents a GTFS trip: one run of a vehicle along a route on the days
    described by a service calendar.

    Columns:
        trip_id (String(64)):
            GTFS identifier of the trip. Must be unique.

        route_id (Integer):
            Foreign key referencing `route.id`.
            Becomes null when the trip is unassigned or the route is deleted.

        service_id (Integer):
            Foreign key referencing `calendar.id`. Required.

        vehicle_id (Integer):
            Foreign key referencing `vehicle.id`. Optional.

        direction_id (Integer):
            0 for outbound, 1 for inbound.

        shape_id (String(64)):
            Loose reference to `shape.shape_id`.
    """

    __tablename__ = "trip"

    id = Column(Integer, primary_key=True)
    trip_id = Column(String(64), nullable=False, unique=True)
    route_id = Column(Integer, ForeignKey("route.id", ondelete="SET NULL"), index=True)
    service_id = Column(Integer, ForeignKey("calendar.id"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicle.id", ondelete="SET NULL"))
    trip_headsign = Column(String(128))
    trip_short_name = Column(String(64))
    direction_id = Column(Integer)
    block_id = Column(String(64))
    shape_id = Column(String(64))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
    # Relationships
    route = relationship("Route", back_populates="trips")
    service = relationship("Calendar", back_populates="trips")
    vehicle = relationship("Vehicle", back_populates="trips")
    stop_times = relationship(
        "StopTime",
        back_populates="trip",
        cascade="all, delete",
        order_by="StopTime.stop_sequence",
    )


class Stop(ORMbase):
    __tablename__ = "stop"

    id = Column(Integer, primary_key=True)
    stop_id = Column(String(64), nullable=False, unique=True)
    stop_name = Column(String(128), nullable=False)
    stop_lat = Column(Float, nullable=False)
    stop_lon = Column(Float, nullable=False)
    stop_desc = Column(TEXT)
    zone_id = Column(String(64), index=True)
    stop_url = Column(String(256))
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
    # Relationships
    stop_times = relationship("StopTime", back_populates="stop", cascade="all, delete")


class StopTime(ORMbase):
    """
    Represents the scheduled passage of a trip at a stop.

    Times are GTFS `H:MM:SS` strings and may run past 24:00:00 for trips that
    end after midnight. The departure time must be later than the arrival
    time and a trip visits a given stop at most once.
    """

    __tablename__ = "stop_time"
    __table_args__ = (UniqueConstraint("trip_id", "stop_id"),)

    id = Column(Integer, primary_key=True)
    trip_id = Column(
        Integer, ForeignKey("trip.id", ondelete="CASCADE"), nullable=False, index=True
    )
    stop_id = Column(
        Integer, ForeignKey("stop.id", ondelete="CASCADE"), nullable=False, index=True
    )
    arrival_time = Column(String(8), nullable=False)
    departure_time = Column(String(8), nullable=False)
    stop_sequence = Column(Integer, nullable=False)
    pickup_type = Column(Integer)
    drop_off_type = Column(Integer)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
    # Relationships
    trip = relationship("Trip", back_populates="stop_times")
    stop = relationship("Stop", back_populates="stop_times")


class Shape(ORMbase):
    """
    Represents a GTFS shape: the geographic path followed by trips.

    Columns:
        shape_id (String(64)):
            GTFS identifier of the shape. Must be unique.

        points (JSON):
            List of points, each holding `shape_pt_lat`, `shape_pt_lon`,
            `shape_pt_sequence` and an optional `shape_dist_traveled`.
            Stored ordered by `shape_pt_sequence`.
    """

    __tablename__ = "shape"

    id = Column(Integer, primary_key=True)
    shape_id = Column(String(64), nullable=False, unique=True)
    points = Column(JSON, nullable=False, default=list)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())


# ----------------------------------- Fleet DB Models -----------------------------------------#
class Vehicle(ORMbase):
    """
    Represents a vehicle of the fleet along with its latest telemetry.

    A vehicle is driven by one or two drivers and is assigned to at most one
    of a trip, a route or a block at a time.

    Columns:
        unique_id (String(64)):
            Tracker identifier of the vehicle. Must be unique.

        latitude, longitude (Float):
            Last known position.

        temperature, pressure, humidity (Float), flame (Boolean):
            Last sensor readings reported by the vehicle.

        assigned_route_id (Integer):
            Identifier of the route the vehicle is assigned to, if any.

        assigned_trip_id (Integer):
            Identifier of the trip the vehicle is assigned to, if any.

        assigned_block (String(64)):
            GTFS block the vehicle is assigned to, if any.

        estimated_arrival_times (JSON):
            List of `{stopId, arrivalTime}` predictions.

        vehicle_details (JSON):
            Next stop information (`next_stop_id`, `next_stop_name`,
            `next_stop_distance`).
    """

    __tablename__ = "vehicle"

    id = Column(Integer, primary_key=True)
    unique_id = Column(String(64), nullable=False, unique=True)
    name = Column(String(64), nullable=False)
    category = Column(String(32))
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    temperature = Column(Float)
    pressure = Column(Float)
    humidity = Column(Float)
    flame = Column(Boolean)
    position_id = Column(String(64))
    assigned_route_id = Column(Integer, index=True)
    assigned_trip_id = Column(Integer, index=True)
    assigned_block = Column(String(64))
    headsign = Column(String(128))
    estimated_arrival_times = Column(JSON, nullable=False, default=list)
    current_shape_sequence = Column(Integer)
    vehicle_details = Column(JSON, nullable=False, default=dict)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
    # Relationships
    drivers = relationship("Driver", back_populates="vehicle", order_by="Driver.id")
    trips = relationship("Trip", back_populates="vehicle")
    assignments = relationship(
        "VehicleAssignment", back_populates="vehicle", cascade="all, delete"
    )


class Driver(ORMbase):
    """
    Represents a driver of the fleet.

    A driver is bound to at most one vehicle at a time through `vehicle_id`.
    """

    __tablename__ = "driver"

    id = Column(Integer, primary_key=True)
    username = Column(String(64), nullable=False)
    email = Column(String(128), nullable=False, unique=True)
    cin_number = Column(String(32), nullable=False, unique=True)
    phone_number = Column(String(32), nullable=False)
    vehicle_id = Column(
        Integer, ForeignKey("vehicle.id", ondelete="SET NULL"), index=True
    )
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
    # Relationships
    vehicle = relationship("Vehicle", back_populates="drivers")


class VehicleAssignment(ORMbase):
    """
    Represents the assignment of a vehicle to a trip, a route or a block.

    Columns:
        assigned_type (String(16)):
            One of `AssignmentType`.

        assigned_ref (String(64)):
            Identifier of the assigned entity: the trip or route id, or the
            GTFS block identifier.

        status (String(16)):
            One of `AssignmentStatus`. Defaults to `active`.
    """

    __tablename__ = "vehicle_assignment"

    id = Column(Integer, primary_key=True)
    vehicle_id = Column(
        Integer, ForeignKey("vehicle.id", ondelete="CASCADE"), nullable=False
    )
    assigned_type = Column(String(16), nullable=False)
    assigned_ref = Column(String(64), nullable=False)
    assigned_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    status = Column(String(16), nullable=False, default=AssignmentStatus.ACTIVE.value)
    # Metadata
    updated_on = Column(DateTime(timezone=True), onupdate=func.now())
    created_on = Column(DateTime(timezone=True), nullable=False, default=func.now())
    # Relationships
    vehicle = relationship("Vehicle", back_populates="assignments")
