# fleet_config.py
"""
Business constants for batch payables and fuel benchmarks.

Driver payables per (truck, day) batch:
  Staff welfare = flat stipend when the truck made at least one trip
  Roll amount   = per-trip incentive for every trip after the free allowance
"""


class FleetConfig:
    """Fleet-wide settings used by the aggregation and report layers"""

    STAFF_WELFARE_AMOUNT = 300
    ROLL_RATE_PER_TRIP = 100
    ROLL_FREE_TRIPS = 4

    # INR per litre used when neither the trip record nor the fuel log carries a rate
    DEFAULT_DIESEL_RATE = 90.55

    # (low, high) acceptable bands
    BENCHMARKS = {
        "coal_liters_per_trip": (40.0, 60.0),
        "mining_km_per_liter": (3.0, 3.5),
        "mining_liters_per_trip": (30.0, 45.0),
        "global_liters_per_ton": (0.5, 1.5),
    }

    # Registry choices
    WHEEL_CONFIGS = ("10 WHEEL", "12 WHEEL", "14 WHEEL", "16 WHEEL")
    DRIVER_STATUSES = ("ON Duty", "OFF Duty", "Suspended")
    DRIVER_TYPES = ("Permanent", "Temporary")
    PARTY_TYPES = ("SUPPLIER", "CUSTOMER", "OTHER")

    # Truck documents (column, label) and days-to-expiry alert levels
    COMPLIANCE_DOCUMENTS = (
        ("rc_expiry", "RC"),
        ("fitness_expiry", "Fitness"),
        ("insurance_expiry", "Insurance"),
        ("pucc_expiry", "PUCC"),
        ("tax_expiry", "Road Tax"),
        ("permit_expiry", "Permit"),
    )
    COMPLIANCE_CRITICAL_DAYS = 7
    COMPLIANCE_WARNING_DAYS = 14

    TIRE_EXPECTED_LIFESPAN_KM = 100000

    # Display sentinels for missing related data
    PENDING_DRIVER = "PENDING SYNC"
    UNKNOWN_TRUCK = "Unknown"
    NOT_AVAILABLE = "N/A"

    @staticmethod
    def benchmark(name: str) -> tuple:
        try:
            return FleetConfig.BENCHMARKS[name]
        except KeyError:
            raise ValueError(f"Unknown fuel benchmark '{name}'")

    @staticmethod
    def rate_band(value: float, name: str) -> str:
        """Classify a consumption figure as LOW / NORMAL / HIGH against a benchmark."""
        low, high = FleetConfig.benchmark(name)
        if value < low:
            return "LOW"
        if value > high:
            return "HIGH"
        return "NORMAL"
