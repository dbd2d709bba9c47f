from .validation_record import GUID, DecisionSynthesisRecord, MarketValidationRecord

__all__ = ["GUID", "DecisionSynthesisRecord", "MarketValidationRecord"]
