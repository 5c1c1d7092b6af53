class InvalidSignatureError(Exception):
    """Webhook signature missing or not matching the shared secret."""


class MalformedPayloadError(Exception):
    """A webhook payload lacks a field the normalizer cannot do without."""

    def __init__(self, source: str, field: str):
        super().__init__(f"{source} payload missing required field '{field}'")
        self.source = source
        self.field = field
