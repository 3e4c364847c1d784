"""
Complaint Enums
Shared enumerations for the complaints and user management services.
"""

from enum import Enum


class ComplaintStatus(str, Enum):
    """Complaint lifecycle status values"""
    PENDING = "pending"
    UNDER_CONSIDERATION = "under_consideration"
    RESOLVED = "resolved"
    REOPENED = "reopened"
    REASSIGNED = "reassigned"  # legacy alias of under_consideration
    CLOSED = "closed"


class Priority(str, Enum):
    """Complaint priority assigned by the classifier or an admin"""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class Category(str, Enum):
    """Complaint categories; doubles as the municipal department list"""
    WATER_SUPPLY = "Water Supply & Sewage"
    ROADS = "Roads & Potholes"
    WASTE = "Waste Management"
    STREETLIGHTS = "Streetlights & Electricity"
    PUBLIC_HEALTH = "Public Health & Sanitation"
    ILLEGAL_CONSTRUCTION = "Illegal Construction & Encroachment"
    OTHER = "Other"


class Role(str, Enum):
    """Account roles"""
    CITIZEN = "citizen"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"
