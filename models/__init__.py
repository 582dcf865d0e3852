from models.hour_type import HourType
from models.hour_bank import HourBank
from models.teacher import Teacher
from models.school_class import SchoolClass
from models.allocation import Allocation
from models.scenario import Scenario, ConsistencyReport

__all__ = [
    "HourType",
    "HourBank",
    "Teacher",
    "SchoolClass",
    "Allocation",
    "Scenario",
    "ConsistencyReport",
]
