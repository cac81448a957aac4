"""
Error taxonomy for the BOM engine

Every error carries a machine-readable kind and structured details
(which BOM, which edges or work orders) so callers can render their own
message or confirmation dialog.
"""
from typing import Any, Dict, Optional


class BomEngineError(Exception):
    kind = "BomEngineError"
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self):
        return {
            "error": self.kind,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(BomEngineError):
    kind = "ValidationError"
    status_code = 400


class InvalidQuantity(ValidationError):
    kind = "InvalidQuantity"


class LevelMismatch(BomEngineError):
    kind = "LevelMismatch"
    status_code = 400


class NotFound(BomEngineError):
    kind = "NotFound"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            f"{entity} {entity_id} not found",
            {"entity": entity, "id": entity_id},
        )


class ReferencedByOtherBOM(BomEngineError):
    kind = "ReferencedByOtherBOM"
    status_code = 409


class ReferencedByWorkOrder(BomEngineError):
    kind = "ReferencedByWorkOrder"
    status_code = 409


class ConcurrencyConflict(BomEngineError):
    kind = "ConcurrencyConflict"
    status_code = 409
