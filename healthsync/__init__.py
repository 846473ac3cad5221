"""HealthSync: periodic background upload of device health measurements."""

__version__ = "0.1.0"
