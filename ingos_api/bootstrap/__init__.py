from ingos_api.bootstrap.controllers import preconfigure_conventional_controllers, register_conventional_controllers
from ingos_api.bootstrap.exception_handlers import register_exception_handlers
from ingos_api.bootstrap.middleware import build_pipeline, register_pipeline, validate_pipeline_order
from ingos_api.bootstrap.services import configure_services
from ingos_api.bootstrap.system_routes import register_health_checks, register_swagger
from ingos_api.bootstrap.validation import validate_startup_config

__all__ = [
    "preconfigure_conventional_controllers",
    "register_conventional_controllers",
    "configure_services",
    "build_pipeline",
    "register_pipeline",
    "validate_pipeline_order",
    "register_health_checks",
    "register_swagger",
    "register_exception_handlers",
    "validate_startup_config",
]
