from crashtrace.integrations.interface import HubGetter, Integration
from crashtrace.integrations.error_handlers import ErrorCaptureCoordinator, FatalLatch
from crashtrace.integrations.release import Release

__all__ = [
    "ErrorCaptureCoordinator",
    "FatalLatch",
    "HubGetter",
    "Integration",
    "Release",
]
