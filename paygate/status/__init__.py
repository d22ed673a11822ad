from paygate.status.classifier import (
    StatusClassification,
    classify,
    payer_view,
    resolve_status_id,
    status_id_from_name,
)
from paygate.status.codes import POLLING_STATUSES, STATUS_TABLE, TERMINAL_STATUSES, StatusCode

__all__ = [
    "POLLING_STATUSES",
    "STATUS_TABLE",
    "TERMINAL_STATUSES",
    "StatusClassification",
    "StatusCode",
    "classify",
    "payer_view",
    "resolve_status_id",
    "status_id_from_name",
]
