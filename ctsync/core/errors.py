"""Domain-specific errors for ctsync."""


class CtsyncError(Exception):
    """Base error for ctsync."""


class ProfileValidationError(CtsyncError):
    """Raised when a profile file does not conform to schema or semantics."""


class ProfileLoadError(CtsyncError):
    """Raised when loading profile sources fails."""


class ProfileSelectionError(CtsyncError):
    """Raised when a requested profile id cannot be resolved."""


class TransportError(CtsyncError):
    """Base transport error."""


class TransportUnavailableError(TransportError):
    """Raised when the host BLE stack cannot be initialized."""


class ScanError(TransportError):
    """Raised when an adapter scan cannot produce a peripheral list."""


class ScanStartError(ScanError):
    """Raised when an adapter rejects the scan request."""


class PeripheralConnectError(TransportError):
    """Raised on BLE connect failures."""


class ServiceDiscoveryError(TransportError):
    """Raised when GATT service discovery fails on a connected peripheral."""


class CharacteristicReadError(TransportError):
    """Raised when a characteristic read fails."""


class CharacteristicWriteError(TransportError):
    """Raised when a characteristic write fails."""
