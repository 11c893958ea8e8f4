"""VMS Bridge - connector service for cloud-relay and local VMS deployments."""

__version__ = "0.1.0"
