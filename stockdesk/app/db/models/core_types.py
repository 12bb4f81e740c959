import enum


class MovementType(str, enum.Enum):
    inbound = "IN"
    outbound = "OUT"
    adjustment = "ADJUSTMENT"


class StockStatus(str, enum.Enum):
    in_stock = "IN_STOCK"
    low_stock = "LOW_STOCK"
    out_of_stock = "OUT_OF_STOCK"


class AlertLevel(str, enum.Enum):
    critical = "critical"
    warning = "warning"


class OverdrawPolicy(str, enum.Enum):
    # OUT larger than the stored quantity
    clamp = "CLAMP"
    reject = "REJECT"


class SyncAction(str, enum.Enum):
    updated = "updated"
    skipped = "skipped"
    error = "error"
