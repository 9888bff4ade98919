class FrpSetupError(Exception):
    """Base class for every fatal condition raised by frpsetup."""


class ClassificationError(FrpSetupError):
    pass


class UnsupportedPlatformError(ClassificationError):
    pass


class TransferError(FrpSetupError):
    pass


class NoTransferMechanismError(TransferError):
    pass


class MissingBinaryError(TransferError):
    pass


class ValidationError(FrpSetupError):
    pass


class MissingRequiredFieldError(ValidationError):
    def __init__(self, field: str, message: str = ''):
        self.field = field
        super().__init__(message or f'{field} is required')


class SpawnError(FrpSetupError):
    pass
