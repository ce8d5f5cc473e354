# agrolink/models/roles.py

FARMER = "farmer"
RETAILER = "retailer"
LOGISTIC = "logistic"
WAREHOUSE = "warehouse"

ROLES = (FARMER, RETAILER, LOGISTIC, WAREHOUSE)

# prefixes for generated actor ids (FRM3A9F1C1712345678)
ROLE_ID_PREFIX = {
    FARMER: "FRM",
    RETAILER: "RET",
    LOGISTIC: "LOG",
    WAREHOUSE: "WRH",
}

# legacy spellings accepted from older clients
ROLE_ALIASES = {
    "logistics": LOGISTIC,
    "transporter": LOGISTIC,
    "warehousing": WAREHOUSE,
}


def normalize_role(value) -> str:
    role = (value or "").strip().lower()
    role = ROLE_ALIASES.get(role, role)
    return role if role in ROLES else ""


class RequestStatus:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    ALL = (PENDING, APPROVED, REJECTED)
    TERMINAL = (APPROVED, REJECTED)


class PaymentStatus:
    PENDING = "pending"
    PAID = "paid"
