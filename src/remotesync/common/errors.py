"""
Errors for RemoteSync

Every failure raised by the sync subsystem is a RemoteSyncError subclass
carrying an ErrorCode. The code maps to a user-friendly message with a
suggestion for how to resolve it, for display in the CLI or a frontend.
"""
from enum import Enum
from dataclasses import dataclass
from typing import Optional


class ErrorCode(Enum):
    """Error codes for categorization"""
    # Session errors
    ALREADY_ACTIVE = "already_active"
    NOT_CONNECTED = "not_connected"
    SEND_FAILED = "send_failed"
    OUTGOING_TOO_LARGE = "outgoing_too_large"

    # Network errors
    PORT_IN_USE = "port_in_use"
    DISCOVERY_FAILED = "discovery_failed"
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_TIMEOUT = "connection_timeout"
    NETWORK_UNREACHABLE = "network_unreachable"

    # Protocol errors
    PROTOCOL_ERROR = "protocol_error"
    MESSAGE_TOO_LARGE = "message_too_large"

    # Local resources
    FILE_NOT_FOUND = "file_not_found"
    PERMISSION_DENIED = "permission_denied"
    DISK_FULL = "disk_full"
    PLATFORM_UNSUPPORTED = "platform_unsupported"
    CANCELLED = "cancelled"

    # General
    UNKNOWN = "unknown"


@dataclass
class FriendlyError:
    """User-friendly error with message and suggestion"""
    message: str
    suggestion: str
    code: str = ""

    def __str__(self) -> str:
        result = f"Error: {self.message}"
        if self.suggestion:
            result += f"\n  Suggestion: {self.suggestion}"
        return result

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "suggestion": self.suggestion
        }


ERROR_MESSAGES = {
    ErrorCode.ALREADY_ACTIVE: FriendlyError(
        code="already_active",
        message="This device is already sharing",
        suggestion="Stop sharing first, or keep using the current session"
    ),

    ErrorCode.NOT_CONNECTED: FriendlyError(
        code="not_connected",
        message="Not connected to another device",
        suggestion="Start sharing on one device and connect to it from the other"
    ),

    ErrorCode.SEND_FAILED: FriendlyError(
        code="send_failed",
        message="The connection closed before the message could be sent",
        suggestion="Reconnect to the other device and try again"
    ),

    ErrorCode.OUTGOING_TOO_LARGE: FriendlyError(
        code="outgoing_too_large",
        message="The message is too large to send",
        suggestion="Send a smaller file"
    ),

    ErrorCode.PORT_IN_USE: FriendlyError(
        code="port_in_use",
        message="The sharing port is already in use",
        suggestion="Another RemoteSync instance may be running on this machine"
    ),

    ErrorCode.DISCOVERY_FAILED: FriendlyError(
        code="discovery_failed",
        message="Could not start network discovery",
        suggestion="Check that multicast (mDNS/Bonjour) is allowed on this network"
    ),

    ErrorCode.CONNECTION_REFUSED: FriendlyError(
        code="connection_refused",
        message="Connection was refused by the other device",
        suggestion="Make sure the other device is sharing"
    ),

    ErrorCode.CONNECTION_TIMEOUT: FriendlyError(
        code="connection_timeout",
        message="Connection timed out",
        suggestion="Check that both devices are on the same network and the other device is sharing"
    ),

    ErrorCode.NETWORK_UNREACHABLE: FriendlyError(
        code="network_unreachable",
        message="Cannot reach the other device on the network",
        suggestion="Verify both devices are connected to the same local network"
    ),

    ErrorCode.PROTOCOL_ERROR: FriendlyError(
        code="protocol_error",
        message="Received a message that could not be understood",
        suggestion="Ensure both devices are running the same version of RemoteSync"
    ),

    ErrorCode.MESSAGE_TOO_LARGE: FriendlyError(
        code="message_too_large",
        message="Received message exceeds maximum allowed size",
        suggestion="Send a smaller file"
    ),

    ErrorCode.FILE_NOT_FOUND: FriendlyError(
        code="file_not_found",
        message="The file was not found",
        suggestion="The file may have been moved or deleted"
    ),

    ErrorCode.PERMISSION_DENIED: FriendlyError(
        code="permission_denied",
        message="Permission denied when accessing file or directory",
        suggestion="Check file permissions or choose another location"
    ),

    ErrorCode.DISK_FULL: FriendlyError(
        code="disk_full",
        message="Not enough disk space to save the file",
        suggestion="Free up disk space and try again"
    ),

    ErrorCode.PLATFORM_UNSUPPORTED: FriendlyError(
        code="platform_unsupported",
        message="This feature is not available on this platform",
        suggestion=""
    ),

    ErrorCode.CANCELLED: FriendlyError(
        code="cancelled",
        message="Cancelled",
        suggestion=""
    ),

    ErrorCode.UNKNOWN: FriendlyError(
        code="unknown",
        message="An unexpected error occurred",
        suggestion="Check the log file for more details"
    ),
}


class RemoteSyncError(Exception):
    """Base class for all sync errors"""
    code = ErrorCode.UNKNOWN

    def friendly(self) -> FriendlyError:
        return get_error(self.code)


class AlreadyActiveError(RemoteSyncError):
    """An activity that allows one instance was started twice"""
    code = ErrorCode.ALREADY_ACTIVE


class BindError(RemoteSyncError):
    """The listening socket could not be bound"""
    code = ErrorCode.PORT_IN_USE


class DiscoveryError(RemoteSyncError):
    """The mDNS advertiser or browser session could not be created"""
    code = ErrorCode.DISCOVERY_FAILED


class ConnectError(RemoteSyncError):
    """Every dial attempt to a peer failed"""
    code = ErrorCode.CONNECTION_REFUSED

    def __init__(self, attempts: int, last_error: str, code: Optional[ErrorCode] = None):
        super().__init__(f"Failed after {attempts} attempts. {last_error}")
        self.attempts = attempts
        self.last_error = last_error
        if code is not None:
            self.code = code


class NotConnectedError(RemoteSyncError):
    """A send was attempted with no active link"""
    code = ErrorCode.NOT_CONNECTED

    def __init__(self, message: str = "Not connected"):
        super().__init__(message)


class SendFailedError(RemoteSyncError):
    """The active link refused the message (it just closed or is stuck)"""
    code = ErrorCode.SEND_FAILED


class OutgoingTooLargeError(SendFailedError):
    """An outbound message would not fit in one frame"""
    code = ErrorCode.OUTGOING_TOO_LARGE


class DecodeError(RemoteSyncError):
    """An inbound record is malformed or has an unknown tag"""
    code = ErrorCode.PROTOCOL_ERROR


class FrameTooLargeError(DecodeError):
    """A frame header announced more data than we accept"""
    code = ErrorCode.MESSAGE_TOO_LARGE


class FileIOError(RemoteSyncError):
    """Reading or writing a local file failed"""

    def __init__(self, message: str, cause: Optional[OSError] = None):
        super().__init__(message)
        self.code = _code_for_os_error(cause) if cause is not None else ErrorCode.UNKNOWN


class PlatformUnsupportedError(RemoteSyncError):
    """A platform capability is not available here"""
    code = ErrorCode.PLATFORM_UNSUPPORTED


class UserCancelledError(RemoteSyncError):
    """The user dismissed a prompt. Callers treat this as "no result"."""
    code = ErrorCode.CANCELLED


def get_error(code: ErrorCode) -> FriendlyError:
    """Get user-friendly error for a given error code"""
    return ERROR_MESSAGES.get(code, ERROR_MESSAGES[ErrorCode.UNKNOWN])


def _code_for_os_error(exc: OSError) -> ErrorCode:
    if isinstance(exc, FileNotFoundError):
        return ErrorCode.FILE_NOT_FOUND
    if isinstance(exc, PermissionError):
        return ErrorCode.PERMISSION_DENIED
    return classify_exception(exc)


def classify_exception(exc: Exception) -> ErrorCode:
    """Map common exceptions to error codes"""
    if isinstance(exc, RemoteSyncError):
        return exc.code
    if isinstance(exc, TimeoutError):
        return ErrorCode.CONNECTION_TIMEOUT
    if isinstance(exc, ConnectionRefusedError):
        return ErrorCode.CONNECTION_REFUSED

    exc_str = str(exc).lower()

    if "connection refused" in exc_str:
        return ErrorCode.CONNECTION_REFUSED
    if "timed out" in exc_str or "timeout" in exc_str:
        return ErrorCode.CONNECTION_TIMEOUT
    if "unreachable" in exc_str or "no route to host" in exc_str:
        return ErrorCode.NETWORK_UNREACHABLE
    if "address already in use" in exc_str:
        return ErrorCode.PORT_IN_USE
    if "no such file" in exc_str or "not found" in exc_str:
        return ErrorCode.FILE_NOT_FOUND
    if "permission denied" in exc_str:
        return ErrorCode.PERMISSION_DENIED
    if "no space left" in exc_str or "disk full" in exc_str:
        return ErrorCode.DISK_FULL

    return ErrorCode.UNKNOWN


def get_error_from_exception(exc: Exception) -> FriendlyError:
    """Map an exception to a user-friendly error"""
    code = classify_exception(exc)
    error = get_error(code)
    if code is ErrorCode.UNKNOWN:
        # Include original exception type for debugging
        return FriendlyError(
            code=error.code,
            message=f"{error.message}: {type(exc).__name__}",
            suggestion=error.suggestion
        )
    return error


def format_error(code: ErrorCode, details: Optional[str] = None) -> str:
    """Format error message for display"""
    error = get_error(code)
    result = str(error)
    if details:
        result = f"{result}\n  Details: {details}"
    return result
