from ingos_api.routes import application_configuration, localization, profile

__all__ = ["application_configuration", "localization", "profile"]
