from enum import Enum

from pydantic import BaseModel


class ExportType(str, Enum):
    USERS = "users"
    DEPARTMENTS = "departments"
    ANALYTICS = "analytics"


class UserActivityStats(BaseModel):
    total_users: int
    active_users: int
    inactive_users: int
    active_percentage: int


class AdminAnalytics(BaseModel):
    role_distribution: dict[str, int]
    user_activity: UserActivityStats
    active_departments: int
