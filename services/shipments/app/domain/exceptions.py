"""Domain errors raised by the shipment services and translated at the API boundary."""

class ShipmentError(Exception):
    """Base class for shipment domain errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

class ShipmentNotFound(ShipmentError):
    pass

class TransitionRejected(ShipmentError):
    """The requested status change is not allowed from the current status."""

class TrackingNumberConflict(ShipmentError):
    """No unique tracking number could be stored within the retry budget."""
