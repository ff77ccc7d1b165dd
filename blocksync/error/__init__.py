from .base import BaseError


class UserInputError(BaseError):
    """
    User input errors.
    """


class ConfigurationError(UserInputError):
    """
    Configuration errors.
    """


class ConfigReadError(ConfigurationError):
    """
    When directory or configuration file is not found.
    """

    def __init__(self, path):
        self.path = path
        super().__init__(f"Cannot find provided configuration file '{path}'.")


class InvalidSettingError(ConfigurationError, ValueError):

    def __init__(self, name, value, expected):
        self.name = name
        self.value = value
        self.expected = expected
        super().__init__(f"Setting '{name}' must be {expected}, got {value!r}.")


class MissingSourceFileError(UserInputError, ValueError):

    def __init__(self, file_path):
        self.file_path = file_path
        super().__init__(f"File does not exist: {file_path}")


class NetworkError(BaseError):
    """
    **Exceptions relating to network connectivity.**
    """


class ConnectionFailedError(NetworkError):

    def __init__(self, host, port, reason):
        self.host = host
        self.port = port
        self.reason = reason
        super().__init__(f"Could not connect to {host}:{port}: {reason}")


class ProtocolError(BaseError):
    """
    **Decoding and framing errors, fatal to the connection they occur on.**
    """


class IncompleteMessageError(ProtocolError):

    def __init__(self, field, expected, received):
        self.field = field
        self.expected = expected
        self.received = received
        super().__init__(f"Stream ended while reading {field}: got {received} of {expected} bytes.")


class MalformedMessageError(ProtocolError):

    def __init__(self, message):
        self.message = message
        super().__init__(f"{message}")


class VerificationError(BaseError):
    """
    **Received data does not match the checksum announced by the peer.**
    """


class BlockChecksumMismatchError(VerificationError):

    def __init__(self, file_name, block_index, expected, received):
        self.file_name = file_name
        self.block_index = block_index
        self.expected = expected
        self.received = received
        super().__init__(
            f"Block {block_index} of '{file_name}' failed verification: "
            f"checksum is {received:08x} vs expected {expected:08x}."
        )


class InvalidDataError(VerificationError):

    def __init__(self, message):
        self.message = message
        super().__init__(f"{message}")


class LocalFileError(BaseError):
    """
    **Errors reading or writing files on this host.**
    """


class BlockReadError(LocalFileError, IOError):

    def __init__(self, block_index, expected, received):
        self.block_index = block_index
        self.expected = expected
        self.received = received
        super().__init__(
            f"Block {block_index} is truncated: read {received} of {expected} bytes, "
            f"the file was modified or is corrupt."
        )


class FatalSyncError(LocalFileError):
    """
    Unrecoverable errors; reconnecting to the peer cannot fix these.
    """


class InvalidFileNameError(FatalSyncError):

    def __init__(self, file_name):
        self.file_name = file_name
        super().__init__(f"Refusing to write file with invalid name {file_name!r}.")


class FileTooLargeError(FatalSyncError):

    def __init__(self, file_name, size, max_size):
        self.file_name = file_name
        self.size = size
        self.max_size = max_size
        super().__init__(f"'{file_name}' is {size} bytes, which exceeds the maximum of {max_size} bytes.")


class DestinationFileError(FatalSyncError):

    def __init__(self, file_path, reason):
        self.file_path = file_path
        self.reason = reason
        super().__init__(f"Cannot open '{file_path}' for writing: {reason}")
