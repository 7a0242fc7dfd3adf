class AssemblyError(Exception):
    """Base exception for Buildline workflow failures.

    Raised inside services and converted to a structured failure result at the
    operation boundary.
    """

    pass


class JourneyNotFoundError(AssemblyError):
    """Raised when no journey exists for a barcode."""

    def __init__(self, barcode: str):
        self.barcode = barcode
        super().__init__("Bike not found")


class DuplicateBarcodeError(AssemblyError):
    """Raised when intake is attempted for a barcode that already has a journey."""

    def __init__(self, barcode: str):
        self.barcode = barcode
        super().__init__(f"Bike with barcode {barcode} already exists")


class InvalidTransitionError(AssemblyError):
    """Raised when a journey is not in a stage that allows the operation."""

    pass


class NotAssignedError(AssemblyError):
    """Raised when the acting technician is not the one assigned to the bike."""

    def __init__(self):
        super().__init__("Bike is not assigned to you")


class ChecklistIncompleteError(AssemblyError):
    """Raised when completion is attempted with an unchecked item."""

    def __init__(self):
        super().__init__("All checklist items must be completed")


class ChecklistStructureError(AssemblyError):
    """Raised when a checklist does not have exactly the tyres/brakes/gears flags."""

    pass


class InvalidQCResultError(AssemblyError):
    """Raised for a QC result other than pass or fail."""

    def __init__(self):
        super().__init__("Invalid QC result. Must be pass or fail")


class BinNotFoundError(AssemblyError):
    """Raised when a bin id does not exist."""

    def __init__(self):
        super().__init__("Bin not found")


class CapacityExceededError(AssemblyError):
    """Raised when a bin has no free slot for a reservation."""

    def __init__(self, bin_code: str | None = None):
        self.bin_code = bin_code
        label = f" {bin_code}" if bin_code else ""
        super().__init__(f"Assembly bin{label} is at full capacity")


class ConcurrentModificationError(AssemblyError):
    """Raised when a guarded update lost a race against another writer."""

    def __init__(self):
        super().__init__("Bike was modified concurrently, please retry")


class LocationNotFoundError(AssemblyError):
    """Raised when a location id is unknown to the location directory."""

    def __init__(self):
        super().__init__("Location not found")


class ActorNotFoundError(AssemblyError):
    """Raised when an actor id is unknown or lacks the expected buildline role."""

    def __init__(self, role: str | None = None):
        self.role = role
        super().__init__(f"{role.replace('_', ' ').capitalize() if role else 'User'} not found")
