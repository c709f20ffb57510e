from .boxes import Box, BoxColorStock
from .audits import BoxAudit, AUDIT_ACTIONS, STOCK_ACTIONS, INFO_ACTIONS
from .challans import (
    Challan, ChallanItem, ChallanCounter,
    TAX_TYPES, INVENTORY_MODES, CHALLAN_STATUSES, DOC_TYPES, RECEIPT_SERIES, SEQUENCE_SERIES,
)
from .batches import ClientBatch, BATCH_STATUSES

__all__ = [
    'Box', 'BoxColorStock',
    'BoxAudit', 'AUDIT_ACTIONS', 'STOCK_ACTIONS', 'INFO_ACTIONS',
    'Challan', 'ChallanItem', 'ChallanCounter',
    'TAX_TYPES', 'INVENTORY_MODES', 'CHALLAN_STATUSES', 'DOC_TYPES', 'RECEIPT_SERIES', 'SEQUENCE_SERIES',
    'ClientBatch', 'BATCH_STATUSES',
]
