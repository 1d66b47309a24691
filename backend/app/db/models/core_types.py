import enum

class POStatus(str, enum.Enum):
    draft = "draft"
    pending = "pending"
    sent = "sent"
    confirmed = "confirmed"
    shipped = "shipped"
    partial = "partial"
    received = "received"
    cancelled = "cancelled"

class BackorderStatus(str, enum.Enum):
    pending = "pending"
    received = "received"
    cancelled = "cancelled"

class SalesChannel(str, enum.Enum):
    amazon = "amazon"
    shopify = "shopify"
    manual = "manual"


# PO modifiables (lignes, coûts, suppression)
EDITABLE_PO_STATUSES = {POStatus.draft, POStatus.pending}

# Aucun changement de statut après ces états
TERMINAL_PO_STATUSES = {POStatus.received, POStatus.cancelled}
