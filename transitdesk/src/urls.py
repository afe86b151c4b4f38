"""
API Endpoint URL Constants

This module defines the URL paths used throughout the application
for accessing the resources of the transit system.

These URLs are relative paths, served below the `/api` mount point.
"""

# -------------------------------
# Authentication
# -------------------------------
URL_SESSION = "/session"

# -------------------------------
# Accounts & permissions
# -------------------------------
URL_USER = "/users"
URL_USER_PERMISSION = "/userpermission"
URL_MESSAGE = "/messages"

# -------------------------------
# GTFS entities
# -------------------------------
URL_AGENCY = "/agencies"
URL_ROUTE = "/routes"
URL_TRIP = "/trips"
URL_STOP = "/stops"
URL_STOP_TIME = "/stopTimes"
URL_CALENDAR = "/calendars"
URL_SHAPE = "/shapes"

# -------------------------------
# Fleet
# -------------------------------
URL_VEHICLE = "/vehicles"
URL_DRIVER = "/drivers"
URL_STUDENT = "/students"
URL_VEHICLE_ASSIGNMENT = "/vehicle-assignments"
