class OptimizerError(Exception):
    """Base class for everything the optimization pipeline can fail with."""


class ClipboardUnavailable(OptimizerError):
    """The OS refused clipboard access, usually because another process holds it open."""


class DecodeFailure(OptimizerError):
    """Clipboard image data is corrupt or in a format the codec cannot read."""


class EncodeFailure(OptimizerError):
    """The codec failed while producing the JPEG output."""


class WriteFailure(OptimizerError):
    """The clipboard rejected a write after a successful encode."""


class AutoStartError(Exception):
    """Startup registration could not be queried or changed."""
