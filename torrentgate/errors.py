"""
Exceptions raised by the gateway. Each carries the HTTP status the API layer
answers with when the error stops the requested action.
"""


class GatewayError(Exception):
    status_code = 500


class InvalidTorrentIdentifier(GatewayError):
    status_code = 400


class RemoteFetchError(GatewayError):
    status_code = 400


class TorrentNotFound(GatewayError):
    status_code = 404


class FileNotFound(GatewayError):
    status_code = 404


class AddressResolutionError(GatewayError):
    status_code = 500


class NoLocalAddressFound(AddressResolutionError):
    pass


# Cleanup failures below are only ever logged.

class PersistenceWriteError(GatewayError):
    pass


class PersistenceDeleteError(GatewayError):
    pass


class PieceDeleteError(GatewayError):
    pass


class PieceNotFound(KeyError):
    """Raised by the piece cache when a key has no stored data."""
