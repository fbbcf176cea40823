from .enums import (
    LocationKind, PackagingKind, InstanceState, DepositReason,
    InspectionResult, ContaminationKind, SensorType,
)
from .reference import Location, Retailer, Hub, Customer, PackagingCatalog
from .assets import PackagingInstance
from .deposits import DepositAccount, DepositTransaction
from .loans import Checkout, Return
from .quality import WashCycle, WashCycleItem, Inspection, ContaminationIncident
from .telemetry import SensorReading, Movement
from .audit import AuditLog
from .views import V_INSTANCE_LAST_LOCATION, V_CUSTOMER_BALANCES

__all__ = [
    'LocationKind', 'PackagingKind', 'InstanceState', 'DepositReason',
    'InspectionResult', 'ContaminationKind', 'SensorType',
    'Location', 'Retailer', 'Hub', 'Customer', 'PackagingCatalog',
    'PackagingInstance',
    'DepositAccount', 'DepositTransaction',
    'Checkout', 'Return',
    'WashCycle', 'WashCycleItem', 'Inspection', 'ContaminationIncident',
    'SensorReading', 'Movement',
    'AuditLog',
    'V_INSTANCE_LAST_LOCATION', 'V_CUSTOMER_BALANCES',
]
