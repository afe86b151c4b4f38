from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from transitdesk.api import (
    session,
    user,
    user_permission,
    message,
    agency,
    route,
    trip,
    stop,
    stop_time,
    calendar,
    shape,
    vehicle,
    driver,
    student,
    vehicle_assignment,
)
from transitdesk.src.constants import API_TITLE
from transitdesk.src.exceptions import formatValidationError


# ------------------------------------------------------
# TransitDesk REST application
# ------------------------------------------------------
app_api = FastAPI(title=API_TITLE)


# ------------------------------------------------------
# Account routers
# ------------------------------------------------------
app_api.include_router(session.route_session)
app_api.include_router(user.route_user)
app_api.include_router(user_permission.route_user_permission)
app_api.include_router(message.route_message)
app_api.include_router(student.route_student)


# ------------------------------------------------------
# Transit routers
# ------------------------------------------------------
app_api.include_router(agency.route_agency)
app_api.include_router(route.route_route)
app_api.include_router(trip.route_trip)
app_api.include_router(stop.route_stop)
app_api.include_router(stop_time.route_stop_time)
app_api.include_router(calendar.route_calendar)
app_api.include_router(shape.route_shape)


# ------------------------------------------------------
# Fleet routers
# ------------------------------------------------------
app_api.include_router(vehicle.route_vehicle)
app_api.include_router(driver.route_driver)
app_api.include_router(vehicle_assignment.route_vehicle_assignment)


# ------------------------------------------------------
# Error rendering
# ------------------------------------------------------
@app_api.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"message": exc.detail},
        headers=exc.headers,
    )


@app_api.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": f"Invalid {formatValidationError(exc)} is provided"},
        headers={"X-Error": "InvalidValue"},
    )
