class ChatdeskError(Exception):
    """Base error; ``code`` is the machine-readable name, ``status_code`` the HTTP mapping."""

    code = "chatdesk_error"
    status_code = 500

    def __init__(self, message: str = ""):
        self.message = message or self.code
        super().__init__(self.message)


class InvalidIdentity(ChatdeskError):
    code = "invalid_identity"
    status_code = 400

    def __init__(self, raw: object, reason: str = "unusable phone identifier"):
        self.raw = raw
        super().__init__(f"Invalid identity {raw!r}: {reason}")


class NotRecognized(ChatdeskError):
    code = "not_recognized"
    status_code = 404


class NotFound(ChatdeskError):
    code = "not_found"
    status_code = 404


class ProviderRejected(ChatdeskError):
    code = "provider_rejected"
    status_code = 502

    def __init__(self, status: int, detail: str = ""):
        self.status = status
        self.detail = detail
        super().__init__(f"Provider rejected message: HTTP {status} {detail}".strip())


class TransportError(ChatdeskError):
    code = "transport_error"
    status_code = 504


class StoreConflict(ChatdeskError):
    code = "store_conflict"
    status_code = 500

    def __init__(self, identity: str, expected_version: int):
        self.identity = identity
        self.expected_version = expected_version
        super().__init__(f"Concurrent update on session {identity} (expected version {expected_version})")
